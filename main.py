import json
import random
import sys

import pygame

from settings import TITLE
from engine.catalog_client import InMemoryCatalog, LocalImageUploader
from engine.config import load_config
from engine.error_handler import LOG_DIR, logger, set_message_sink
from engine.scenes.character_creation import CharacterCreationScene
from engine.wizard import CharacterWizard
from telemetry.logger import telemetry


def main() -> None:
    config = load_config()

    if config.telemetry_enabled:
        telemetry.init(config.resolve_path(config.telemetry_path))

    pygame.init()
    pygame.display.set_caption(TITLE)

    flags = pygame.FULLSCREEN if config.fullscreen else 0
    screen = pygame.display.set_mode(config.get_resolution(), flags)

    wizard = CharacterWizard(
        catalog=InMemoryCatalog(latency=config.catalog_latency),
        uploader=LocalImageUploader(config.resolve_path(config.upload_dir)),
        rng=random.Random(config.random_seed),
    )
    set_message_sink(wizard.messages)

    # --- Character creation: race, background, classes, abilities, HP, name ---
    scene = CharacterCreationScene(screen, wizard)
    record = scene.run()
    pygame.quit()

    if record is None:
        # User quit during character creation
        sys.exit()

    out_file = LOG_DIR.parent / "characters" / f"{record.name.replace(' ', '_').lower() or 'character'}.json"
    out_file.parent.mkdir(parents=True, exist_ok=True)
    with out_file.open("w", encoding="utf-8") as f:
        json.dump(record.to_dict(), f, indent=2)
    logger.info(f"Saved {record.name} to {out_file}")
    print(f"Saved {record.name} to {out_file}")
    sys.exit()


if __name__ == "__main__":
    main()
