import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import pygame

from engine.error_handler import CharacterBuilderError, handle_critical_error
from engine.wizard import STEP_ORDER, CharacterWizard, WizardStep
from settings import (
    COLOR_BG,
    COLOR_DIM,
    COLOR_HIGHLIGHT,
    COLOR_PANEL,
    COLOR_TEXT,
    FPS,
    LINE_HEIGHT,
    LIST_ROWS,
    MARGIN,
    MESSAGE_ROWS,
)
from systems.catalog import SKILLS, STANDARD_LANGUAGES
from systems.classes import all_classes
from systems.stats import ABILITIES, ABILITY_ABBREVIATIONS
from systems.character_creation.feats import all_feats
from systems.character_creation.record import CharacterCreationRecord
from systems.character_creation.sources import LINEAGE_DARKVISION, LINEAGE_SKILL, AsiMode

logger = logging.getLogger("charforge.scene")

Action = Optional[Callable[[], None]]


@dataclass
class Row:
    """One line of the step list: Enter runs `on_enter`, Left/Right run `on_left`/`on_right`."""
    label: str
    on_enter: Action = None
    on_left: Action = None
    on_right: Action = None
    checked: bool = False


def _toggle(values, value) -> List[str]:
    values = list(values)
    if value in values:
        values.remove(value)
    else:
        values.append(value)
    return values


def _cycle(options: List, current, step: int):
    if not options:
        return current
    if current not in options:
        return options[0]
    return options[(options.index(current) + step) % len(options)]


class CharacterCreationScene:
    """
    Keyboard-driven front end for CharacterWizard.

    Up/Down move the cursor, Enter activates a row, Left/Right adjust it,
    Tab advances to the next step (validating), Backspace goes back, F10
    finalizes on the review step, Esc quits.

    Async wizard transitions (catalog loads) run to completion on the scene's
    own event loop, so the draft is only ever touched between frames.
    """

    def __init__(self, screen: pygame.Surface, wizard: CharacterWizard) -> None:
        self.screen = screen
        self.wizard = wizard
        self.font_title = pygame.font.SysFont("consolas", 28)
        self.font_main = pygame.font.SysFont("consolas", 20)
        self.font_small = pygame.font.SysFont("consolas", 16)

        self.loop = asyncio.new_event_loop()
        self.cursor = 0
        self.scroll = 0
        self.race_entries = self._load_list(self.wizard.catalog.list_races())
        self.background_entries = self._load_list(self.wizard.catalog.list_backgrounds())

    # ------------------------------------------------------------------
    # Async bridge
    # ------------------------------------------------------------------

    def _load_list(self, coro) -> list:
        result = self.loop.run_until_complete(coro)
        if not result.ok:
            self.wizard.messages.add(result.error.user_message, severity="warning")
            return []
        return list(result.data)

    def _call(self, fn, *args) -> None:
        """Run a wizard transition; refusals are already on the message log."""
        try:
            outcome = fn(*args)
            if asyncio.iscoroutine(outcome):
                self.loop.run_until_complete(outcome)
        except CharacterBuilderError as e:
            logger.debug("Transition %s refused: %s", getattr(fn, "__name__", fn), e)

    def close(self) -> None:
        if not self.loop.is_closed():
            self.loop.close()

    # ------------------------------------------------------------------
    # Rows per step
    # ------------------------------------------------------------------

    def rows(self) -> List[Row]:
        step = self.wizard.step
        builder = {
            WizardStep.RACE: self._race_rows,
            WizardStep.BACKGROUND: self._background_rows,
            WizardStep.CLASSES: self._class_rows,
            WizardStep.ABILITIES: self._ability_rows,
            WizardStep.ASI: self._asi_rows,
            WizardStep.HIT_POINTS: self._hp_rows,
            WizardStep.DETAILS: self._detail_rows,
            WizardStep.REVIEW: self._review_rows,
        }[step]
        return builder()

    def _race_rows(self) -> List[Row]:
        w = self.wizard
        rows = [
            Row(f"Race: {entry.name}", on_enter=lambda e=entry: self._call(w.select_race, e.id),
                checked=w.draft.race_id == entry.id)
            for entry in self.race_entries
        ]
        race = w.race
        if race is None:
            return rows
        choices = w.race_choices

        def update(**changes):
            current = {
                "ability_picks": list(choices.ability_picks),
                "skill_picks": list(choices.skill_picks),
                "tool_picks": list(choices.tool_picks),
                "language_picks": list(choices.language_picks),
                "feature_options": dict(choices.feature_options),
            }
            current.update(changes)
            self._call(w.set_race_choices, *current.values())

        ability_choice = race.ability_choice()
        if ability_choice is not None:
            for ability in ability_choice.pool:
                rows.append(Row(
                    f"  +{ability_choice.increase} {ability.title()}",
                    on_enter=lambda a=ability: update(ability_picks=_toggle(choices.ability_picks, a)),
                    checked=ability in choices.ability_picks,
                ))

        skill_pool = set()
        for feature in race.features:
            if feature.skills.choice_count:
                skill_pool.update(feature.skills.options or SKILLS)
        for feature in race.choice_features():
            chosen = choices.option_for(feature.name)
            for option in feature.options:
                rows.append(Row(
                    f"  {feature.name}: {option.name}",
                    on_enter=lambda f=feature, o=option: update(
                        feature_options={**dict(choices.feature_options), f.name: o.name}),
                    checked=chosen == option.name,
                ))
                if chosen == option.name and option.skill_count:
                    skill_pool.update(SKILLS)
        for skill in sorted(skill_pool):
            rows.append(Row(
                f"  Skill: {skill.replace('_', ' ').title()}",
                on_enter=lambda s=skill: update(skill_picks=_toggle(choices.skill_picks, s)),
                checked=skill in choices.skill_picks,
            ))
        for feature in race.features:
            for tool in feature.tools.options:
                rows.append(Row(
                    f"  Tool: {tool}",
                    on_enter=lambda t=tool: update(tool_picks=_toggle(choices.tool_picks, t)),
                    checked=tool in choices.tool_picks,
                ))
        if race.languages.choice_count:
            for language in STANDARD_LANGUAGES:
                if language in race.languages.fixed:
                    continue
                rows.append(Row(
                    f"  Language: {language}",
                    on_enter=lambda l=language: update(language_picks=_toggle(choices.language_picks, l)),
                    checked=language in choices.language_picks,
                ))
        if race.custom_lineage:
            lineage = w.custom_lineage
            feat = lineage.feat if lineage else None
            rows.append(Row(
                "  Lineage: Darkvision",
                on_enter=lambda: self._call(w.set_custom_lineage, LINEAGE_DARKVISION, None, feat),
                checked=bool(lineage and lineage.option == LINEAGE_DARKVISION),
            ))
            for skill in SKILLS:
                rows.append(Row(
                    f"  Lineage skill: {skill.replace('_', ' ').title()}",
                    on_enter=lambda s=skill: self._call(w.set_custom_lineage, LINEAGE_SKILL, s, feat),
                    checked=bool(lineage and lineage.skill == skill),
                ))
            if lineage is not None:
                for option in all_feats():
                    rows.append(Row(
                        f"  Lineage feat: {option.name}",
                        on_enter=lambda o=option: self._call(
                            w.set_custom_lineage, lineage.option, lineage.skill, o),
                        checked=feat == option,
                    ))
        return rows

    def _background_rows(self) -> List[Row]:
        w = self.wizard
        rows = [
            Row(f"Background: {entry.name}", on_enter=lambda e=entry: self._call(w.select_background, e.id),
                checked=w.draft.background_id == entry.id)
            for entry in self.background_entries
        ]
        bg = w.background
        if bg is None:
            return rows
        choices = w.background_choices

        def update(skills=None, tools=None, languages=None):
            self._call(
                w.set_background_choices,
                choices.skill_picks if skills is None else skills,
                choices.tool_picks if tools is None else tools,
                choices.language_picks if languages is None else languages,
            )

        if bg.skills.choice_count:
            for skill in bg.skills.options or tuple(SKILLS):
                rows.append(Row(f"  Skill: {skill.replace('_', ' ').title()}",
                                on_enter=lambda s=skill: update(skills=_toggle(choices.skill_picks, s)),
                                checked=skill in choices.skill_picks))
        if bg.tools.choice_count:
            for tool in bg.tools.options:
                rows.append(Row(f"  Tool: {tool}",
                                on_enter=lambda t=tool: update(tools=_toggle(choices.tool_picks, t)),
                                checked=tool in choices.tool_picks))
        if bg.languages.choice_count:
            for language in STANDARD_LANGUAGES:
                rows.append(Row(f"  Language: {language}",
                                on_enter=lambda l=language: update(languages=_toggle(choices.language_picks, l)),
                                checked=language in choices.language_picks))
        return rows

    def _class_rows(self) -> List[Row]:
        w = self.wizard
        rows: List[Row] = []
        taken = {entry.class_id for entry in w.draft.classes}
        for index, entry in enumerate(w.draft.classes):
            class_def = w.class_defs[entry.class_id]
            rows.append(Row(
                f"{entry.name} level {entry.level} (d{entry.hit_die})",
                on_left=lambda i=index, e=entry: self._call(w.set_class_level, i, e.level - 1),
                on_right=lambda i=index, e=entry: self._call(w.set_class_level, i, e.level + 1),
            ))
            if class_def.requires_subclass(entry.level):
                for subclass in class_def.subclasses:
                    rows.append(Row(f"  Subclass: {subclass}",
                                    on_enter=lambda i=index, s=subclass: self._call(w.set_subclass, i, s),
                                    checked=entry.subclass == subclass))
            for skill in class_def.skill_pool:
                rows.append(Row(
                    f"  Skill: {skill.replace('_', ' ').title()}",
                    on_enter=lambda i=index, e=entry, s=skill: self._call(
                        w.set_class_skills, i, _toggle(e.selected_skills, s)),
                    checked=skill in entry.selected_skills,
                ))
            if w.expertise_slots(index):
                for skill in w.draft.proficient_skills():
                    rows.append(Row(
                        f"  Expertise: {skill.replace('_', ' ').title()}",
                        on_enter=lambda i=index, e=entry, s=skill: self._call(
                            w.set_class_expertise, i, _toggle(e.expertise_skills, s)),
                        checked=skill in entry.expertise_skills,
                    ))
            rows.append(Row(f"  Remove {entry.name}", on_enter=lambda i=index: self._call(w.remove_class, i)))
        for class_def in all_classes():
            if class_def.id not in taken:
                rows.append(Row(f"Add {class_def.name}",
                                on_enter=lambda c=class_def: self._call(w.add_class, c.id)))
        return rows

    def _ability_rows(self) -> List[Row]:
        w = self.wizard
        pb = w.draft.point_buy
        rows = []
        for ability in ABILITIES:
            base = pb.base.get(ability)
            final = w.draft.abilities.get(ability)
            mod = w.draft.abilities.modifier(ability)
            rows.append(Row(
                f"{ABILITY_ABBREVIATIONS[ability]}  base {base:2d}  final {final:2d} ({mod:+d})",
                on_left=lambda a=ability, b=base: self._call(w.set_base_score, a, b - 1),
                on_right=lambda a=ability, b=base: self._call(w.set_base_score, a, b + 1),
            ))
        rows.append(Row(f"Points remaining: {pb.remaining()}"))
        return rows

    def _asi_rows(self) -> List[Row]:
        w = self.wizard
        rows: List[Row] = []
        modes = [AsiMode.ABILITY_SCORES, AsiMode.FEAT]
        picks = [None] + list(ABILITIES)
        feats = [None] + all_feats()
        for choice in w.asi_choices():
            fid = choice.feature_id
            rows.append(Row(
                f"{w.class_name(choice.class_id)} {choice.level}: {choice.describe()}",
                on_enter=lambda f=fid, c=choice: self._call(w.set_asi_selected, f, not c.selected),
                on_left=lambda f=fid, c=choice: self._call(w.set_asi_mode, f, _cycle(modes, c.mode, -1)),
                on_right=lambda f=fid, c=choice: self._call(w.set_asi_mode, f, _cycle(modes, c.mode, 1)),
                checked=choice.selected,
            ))
            if choice.mode is AsiMode.ABILITY_SCORES:
                rows.append(Row(
                    f"  First: {(choice.first or '-').title()}",
                    on_left=lambda f=fid, c=choice: self._call(
                        w.choose_asi_ability_scores, f, _cycle(picks, c.first, -1), None),
                    on_right=lambda f=fid, c=choice: self._call(
                        w.choose_asi_ability_scores, f, _cycle(picks, c.first, 1), None),
                ))
                rows.append(Row(
                    f"  Second: {(choice.second or '-').title()}",
                    on_left=lambda f=fid, c=choice: self._call(
                        w.choose_asi_ability_scores, f, c.first, _cycle(picks, c.second, -1)),
                    on_right=lambda f=fid, c=choice: self._call(
                        w.choose_asi_ability_scores, f, c.first, _cycle(picks, c.second, 1)),
                ))
            elif choice.mode is AsiMode.FEAT:
                rows.append(Row(
                    f"  Feat: {choice.feat.name if choice.feat else '-'}",
                    on_left=lambda f=fid, c=choice: self._call(w.choose_asi_feat, f, _cycle(feats, c.feat, -1)),
                    on_right=lambda f=fid, c=choice: self._call(w.choose_asi_feat, f, _cycle(feats, c.feat, 1)),
                ))
        if not rows:
            rows.append(Row("No Ability Score Improvements at this level"))
        return rows

    def _hp_rows(self) -> List[Row]:
        w = self.wizard
        result = w.hp_result
        if result is None:
            return [Row("Roll hit points", on_enter=lambda: self._call(w.roll_hit_points))]
        rows = [Row(f"Total: {result.total} HP")]
        for part in result.per_class:
            dice = ", ".join(str(d) for d in part.dice)
            rows.append(Row(f"  {part.class_name} {part.level}: d{part.die_size} [{dice}] = {part.subtotal}"))
        if result.race_bonus:
            rows.append(Row(f"  Race bonus: +{result.race_bonus}"))
        return rows

    def _detail_rows(self) -> List[Row]:
        return [Row(f"Name: {self.wizard.draft.name}_")]

    def _review_rows(self) -> List[Row]:
        d = self.wizard.draft
        rows = [
            Row(f"{d.name or '(unnamed)'}  level {d.character_level}"),
            Row(f"HP {d.max_hit_points}  Speed {d.speed}  AC {10 + d.abilities.modifier('dexterity')}"),
            Row("  ".join(f"{ABILITY_ABBREVIATIONS[a]} {d.abilities.get(a)}" for a in ABILITIES)),
            Row("Skills: " + ", ".join(s.replace("_", " ") for s in d.proficient_skills())),
            Row("Languages: " + ", ".join(d.languages)),
            Row("Feats: " + ", ".join(f.name for f in d.feats)),
        ]
        problems = self.wizard.validate_all()
        rows.extend(Row(f"! {p}") for p in problems)
        if not problems:
            rows.append(Row("Press F10 to create this character"))
        return rows

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def handle_key(self, key: int, text: str = ""):
        """
        Handle one key press.

        Returns a CharacterCreationRecord when the character was finalized,
        False when the user quits, None otherwise.
        """
        w = self.wizard
        if key == pygame.K_ESCAPE:
            w.cancel()
            return False

        if w.step is WizardStep.DETAILS and key not in (pygame.K_TAB, pygame.K_UP, pygame.K_DOWN):
            if key == pygame.K_BACKSPACE:
                self._call(w.set_name, w.draft.name[:-1])
            elif text and text.isprintable():
                self._call(w.set_name, w.draft.name + text)
            return None

        rows = self.rows()
        if key == pygame.K_UP:
            self.cursor = max(0, self.cursor - 1)
        elif key == pygame.K_DOWN:
            self.cursor = min(max(0, len(rows) - 1), self.cursor + 1)
        elif key == pygame.K_TAB:
            self._call(w.advance)
            self.cursor = 0
        elif key == pygame.K_BACKSPACE:
            w.back()
            self.cursor = 0
        elif key == pygame.K_F10 and w.step is WizardStep.REVIEW:
            try:
                return w.finalize()
            except CharacterBuilderError:
                return None
        elif rows and key in (pygame.K_RETURN, pygame.K_LEFT, pygame.K_RIGHT):
            row = rows[min(self.cursor, len(rows) - 1)]
            action = {pygame.K_RETURN: row.on_enter, pygame.K_LEFT: row.on_left,
                      pygame.K_RIGHT: row.on_right}[key]
            if action is not None:
                action()
        return None

    # ------------------------------------------------------------------
    # Loop / drawing
    # ------------------------------------------------------------------

    def run(self) -> Optional[CharacterCreationRecord]:
        """Main loop. Returns the finished record or None if the user quits."""
        clock = pygame.time.Clock()
        try:
            while True:
                clock.tick(FPS)
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self.wizard.cancel()
                        return None
                    if event.type == pygame.KEYDOWN:
                        outcome = self.handle_key(event.key, getattr(event, "unicode", ""))
                        if outcome is False:
                            return None
                        if isinstance(outcome, CharacterCreationRecord):
                            return outcome
                try:
                    self.draw()
                except pygame.error as e:
                    if not handle_critical_error(e, "draw", self.wizard.messages):
                        raise
                pygame.display.flip()
        finally:
            self.close()

    def draw(self) -> None:
        w, h = self.screen.get_size()
        self.screen.fill(COLOR_BG)

        # Step header
        x = MARGIN
        for step in STEP_ORDER:
            color = COLOR_HIGHLIGHT if step is self.wizard.step else COLOR_DIM
            surf = self.font_small.render(step.value.replace("_", " ").title(), True, color)
            self.screen.blit(surf, (x, 16))
            x += surf.get_width() + 18

        title = self.font_title.render(self.wizard.step.value.replace("_", " ").title(), True, COLOR_TEXT)
        self.screen.blit(title, (MARGIN, 44))

        # Row list, scrolled to keep the cursor visible
        rows = self.rows()
        self.cursor = min(self.cursor, max(0, len(rows) - 1))
        if self.cursor < self.scroll:
            self.scroll = self.cursor
        elif self.cursor >= self.scroll + LIST_ROWS:
            self.scroll = self.cursor - LIST_ROWS + 1
        y = 90
        for index in range(self.scroll, min(len(rows), self.scroll + LIST_ROWS)):
            row = rows[index]
            marker = "[x] " if row.checked else "    "
            color = COLOR_HIGHLIGHT if index == self.cursor else COLOR_TEXT
            surf = self.font_main.render(marker + row.label, True, color)
            self.screen.blit(surf, (MARGIN, y))
            y += LINE_HEIGHT

        # Summary panel
        d = self.wizard.draft
        panel_x = w // 2 + MARGIN
        pygame.draw.rect(self.screen, COLOR_PANEL, (panel_x - 10, 86, w // 2 - 2 * MARGIN, 8 * LINE_HEIGHT))
        lines = [
            f"Race: {d.race_id or '-'}   Background: {d.background_id or '-'}",
            "Classes: " + (", ".join(f"{c.name} {c.level}" for c in d.classes) or "-"),
            "  ".join(f"{ABILITY_ABBREVIATIONS[a]} {d.abilities.get(a)}" for a in ABILITIES),
            f"Speed {d.speed}   HP {d.max_hit_points}   Points left {d.point_buy.remaining()}",
            "Skills: " + (", ".join(d.proficient_skills()) or "-"),
            "Saves: " + (", ".join(a[:3] for a, on in d.saving_throws.items() if on) or "-"),
        ]
        y = 92
        for line in lines:
            surf = self.font_small.render(line, True, COLOR_TEXT)
            self.screen.blit(surf, (panel_x, y))
            y += LINE_HEIGHT

        # Messages
        y = h - MARGIN - MESSAGE_ROWS * LINE_HEIGHT
        for text, color in self.wizard.messages.recent(MESSAGE_ROWS):
            surf = self.font_small.render(text, True, color or COLOR_TEXT)
            self.screen.blit(surf, (MARGIN, y))
            y += LINE_HEIGHT

        hint = self.font_small.render(
            "Up/Down: move  Enter: choose  Left/Right: adjust  Tab: next  Backspace: back  Esc: quit",
            True, COLOR_DIM,
        )
        self.screen.blit(hint, (w // 2 - hint.get_width() // 2, h - 30))
