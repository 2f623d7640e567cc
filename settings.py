# settings.py

# Window / display
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
FPS = 60
TITLE = "Charforge"

# Colors
COLOR_BG = (15, 15, 20)
COLOR_TEXT = (220, 220, 220)
COLOR_DIM = (130, 130, 140)
COLOR_HIGHLIGHT = (220, 210, 90)
COLOR_PANEL = (30, 30, 40)

# Layout
MARGIN = 40
LINE_HEIGHT = 24
LIST_ROWS = 14
MESSAGE_ROWS = 5
