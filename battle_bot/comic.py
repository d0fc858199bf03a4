"""Story comics: a cover, ten generated story pages and a back cover.

Each story page gets a beat (caption, dialogue, scene) from the text model
and a panel from the image model, using the hero and optional co-star images
as references. Decision pages pause for the creator to pick how the story
continues; an unanswered prompt takes the first option. Every page is
best-effort: a failed beat falls back to a placeholder and a failed panel is
left out of the posted pages and the compiled PDF.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Final, Literal, TypeVar

from .content import ContentProvider
from .document import ComicDocument
from .interaction import Artifact, ChoicePrompt, NullReporter, Reporter, safe_post
from .match import DEFAULT_GENERATION_TIMEOUT_SECONDS
from .prompts import comic_panel_prompt, story_beat_prompt
from .validation import InvalidValueError

log: Final = logging.getLogger("battle-bot")

T = TypeVar("T")

GENRES: Final[tuple[str, ...]] = (
    "Classic Horror",
    "Superhero Action",
    "Dark Sci-Fi",
    "High Fantasy",
    "Neon Noir Detective",
    "Wasteland Apocalypse",
    "Lighthearted Comedy",
    "Teen Drama / Slice of Life",
    "Custom",
)
TONES: Final[tuple[str, ...]] = (
    "ACTION-HEAVY (Short, punchy dialogue. Focus on kinetics.)",
    "INNER-MONOLOGUE (Heavy captions revealing thoughts.)",
    "QUIPPY (Characters use humor as a defense mechanism.)",
    "OPERATIC (Grand, dramatic declarations and high stakes.)",
    "CASUAL (Natural dialogue, focus on relationships/gossip.)",
    "WHOLESOME (Warm, gentle, optimistic.)",
)
STORY_PAGES: Final[int] = 10
DECISION_PAGES: Final[tuple[int, ...]] = (3,)
DEFAULT_DECISION_TIMEOUT_SECONDS: Final[float] = 30.0
FALLBACK_CHOICES: Final[tuple[str, str]] = ("Fight back", "Run away")
COMIC_FILENAME: Final[str] = "Infinite-Heroes-Issue.pdf"
MAX_CHOICES: Final[int] = 4

PageKind = Literal["cover", "story", "back_cover"]


def tones_for(genre: str) -> tuple[str, ...]:
    if genre in ("Teen Drama / Slice of Life", "Lighthearted Comedy"):
        keys = ("CASUAL", "WHOLESOME", "QUIPPY")
    elif genre == "Classic Horror":
        keys = ("INNER-MONOLOGUE", "OPERATIC")
    else:
        return TONES
    return tuple(tone for tone in TONES if tone.split(" ", 1)[0] in keys)


@dataclass(slots=True, frozen=True)
class Beat:
    scene: str
    caption: str = ""
    dialogue: str = ""
    focus: str = "hero"
    choices: tuple[str, ...] = ()


def fallback_beat(*, decision: bool = False) -> Beat:
    return Beat(
        scene="A mysterious scene.",
        caption="...",
        choices=FALLBACK_CHOICES if decision else (),
    )


def parse_beat(raw: str, *, decision: bool) -> Beat:
    """Read a model reply as a beat; malformed replies give the fallback beat."""
    text = raw.replace("```json", "").replace("```", "").strip()
    try:
        data = json.loads(text)
    except ValueError:
        log.warning("Story beat was not JSON: %.80s", text)
        return fallback_beat(decision=decision)
    if not isinstance(data, dict) or not str(data.get("scene") or "").strip():
        log.warning("Story beat had no scene: %.80s", text)
        return fallback_beat(decision=decision)
    choices: tuple[str, ...] = ()
    if decision:
        raw_choices = data.get("choices")
        if isinstance(raw_choices, list):
            choices = tuple(str(item).strip() for item in raw_choices if str(item).strip())
        choices = choices[:MAX_CHOICES] if len(choices) >= 2 else FALLBACK_CHOICES
    return Beat(
        scene=str(data["scene"]).strip(),
        caption=str(data.get("caption") or "").strip(),
        dialogue=str(data.get("dialogue") or "").strip(),
        focus=str(data.get("focus_char") or "hero"),
        choices=choices,
    )


@dataclass(slots=True)
class ComicPage:
    index: int
    kind: PageKind
    beat: Beat
    image: bytes | None = None
    resolved_choice: str | None = None

    @property
    def title(self) -> str:
        if self.kind == "cover":
            return "Comic Cover"
        if self.kind == "back_cover":
            return "Back Cover"
        return f"Page {self.index}"

    def recap(self) -> str:
        line = (
            f"[Page {self.index}] [Focus: {self.beat.focus}] "
            f'(Caption: "{self.beat.caption}") (Dialogue: "{self.beat.dialogue}") '
            f"(Scene: {self.beat.scene})"
        )
        if self.resolved_choice:
            line += f' -> USER CHOICE: "{self.resolved_choice}"'
        return line

    def message(self) -> str:
        lines = [f"**{self.title}**"]
        if self.kind == "story":
            if self.beat.caption:
                lines.append(f"*{self.beat.caption}*")
            if self.beat.dialogue:
                lines.append(f'"{self.beat.dialogue}"')
        return "\n".join(lines)


@dataclass(slots=True)
class ComicIssue:
    genre: str
    tone: str
    pages: list[ComicPage] = field(default_factory=list)
    document: bytes | None = None


class StoryGenerator:
    def __init__(
        self,
        provider: ContentProvider,
        hero_url: str,
        genre: str,
        *,
        costar_url: str | None = None,
        reporter: Reporter | None = None,
        chooser: ChoicePrompt | None = None,
        rng: random.Random | None = None,
        decision_pages: Sequence[int] = DECISION_PAGES,
        decision_timeout: float = DEFAULT_DECISION_TIMEOUT_SECONDS,
        timeout: float = DEFAULT_GENERATION_TIMEOUT_SECONDS,
    ) -> None:
        if genre not in GENRES:
            raise InvalidValueError(f"Unknown genre: {genre}")
        self.provider = provider
        self.hero_url = hero_url
        self.costar_url = costar_url
        self.genre = genre
        self.reporter = reporter or NullReporter()
        self.chooser = chooser
        self.decision_pages = frozenset(decision_pages)
        self.decision_timeout = decision_timeout
        self.timeout = timeout
        self.tone = (rng or random.Random()).choice(tones_for(genre))
        self.pages: list[ComicPage] = []

    @property
    def references(self) -> list[str]:
        return [url for url in (self.hero_url, self.costar_url) if url]

    async def run(self) -> ComicIssue:
        await safe_post(
            self.reporter,
            f"🎬 **Starting Generation**\n**Genre:** {self.genre}\n**Tone:** {self.tone}\n"
            f"**Co-Star:** {'Loaded' if self.costar_url else 'None'}",
        )
        await self._page(0, "cover")
        for index in range(1, STORY_PAGES + 1):
            await self._page(index, "story")
        await self._page(STORY_PAGES + 1, "back_cover")

        issue = ComicIssue(genre=self.genre, tone=self.tone, pages=list(self.pages))
        await safe_post(self.reporter, "📚 **Compiling PDF Issue...**")
        issue.document = self._compile()
        if issue.document is None:
            await safe_post(self.reporter, "No panels were generated, so there is no issue.")
        else:
            await safe_post(
                self.reporter,
                "✅ **Full Issue Ready!**",
                [Artifact(COMIC_FILENAME, issue.document)],
            )
        log.info(
            "Comic finished: %d pages, %d with art",
            len(issue.pages),
            sum(1 for page in issue.pages if page.image is not None),
        )
        return issue

    async def _page(self, index: int, kind: PageKind) -> ComicPage:
        if kind == "story":
            beat = await self._beat(index, decision=index in self.decision_pages)
        elif kind == "cover":
            beat = Beat(scene="Cover Art")
        else:
            beat = Beat(scene="Thematic teaser image", focus="other")
        page = ComicPage(index=index, kind=kind, beat=beat)
        self.pages.append(page)

        prompt = comic_panel_prompt(
            kind,
            self.genre,
            scene=beat.scene,
            caption=beat.caption,
            dialogue=beat.dialogue,
            has_costar=self.costar_url is not None,
        )
        page.image = await self._best_effort(
            self.provider.generate_image(prompt, self.references), f"panel {index}"
        )
        if page.image is not None:
            artifact = Artifact(f"panel-{index}.png", page.image)
            await safe_post(self.reporter, page.message(), [artifact])
        if beat.choices:
            page.resolved_choice = await self._decide(page)
        return page

    async def _beat(self, index: int, *, decision: bool) -> Beat:
        history = [page.recap() for page in self.pages if page.kind == "story"]
        prompt = story_beat_prompt(
            index,
            STORY_PAGES,
            genre=self.genre,
            tone=self.tone,
            has_costar=self.costar_url is not None,
            history=history,
            decision=decision,
        )
        raw = await self._best_effort(self.provider.generate_text(prompt), f"beat {index}")
        if raw is None:
            return fallback_beat(decision=decision)
        return parse_beat(raw, decision=decision)

    async def _decide(self, page: ComicPage) -> str:
        options = list(page.beat.choices)
        default = options[0]
        if self.chooser is None:
            return default
        listing = "\n".join(f"**{number}.** {option}" for number, option in enumerate(options, 1))
        await safe_post(self.reporter, f"🤔 **What happens next?**\n{listing}")
        try:
            choice = await self.chooser.present_choice(
                options, self.decision_timeout, default=default
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Story choice on page %d failed: %s", page.index, exc)
            choice = default
        if choice not in options:
            choice = default
        await safe_post(self.reporter, f"✅ **Selected:** {choice}")
        return choice

    async def _best_effort(self, call: Awaitable[T], what: str) -> T | None:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError:
            log.warning("Generating %s timed out after %ss", what, self.timeout)
        except Exception as exc:  # pylint: disable=broad-except
            log.warning("Generating %s failed: %s", what, exc)
        return None

    def _compile(self) -> bytes | None:
        document = ComicDocument(title="Infinite Heroes")
        for page in sorted(self.pages, key=lambda item: item.index):
            if page.image is not None:
                document.append_page(page.image)
        if not len(document):
            return None
        return document.finalize()


__all__ = [
    "Beat",
    "COMIC_FILENAME",
    "ComicIssue",
    "ComicPage",
    "DECISION_PAGES",
    "GENRES",
    "STORY_PAGES",
    "StoryGenerator",
    "TONES",
    "fallback_beat",
    "parse_beat",
    "tones_for",
]
