"""Quiz state models.

A Session is the full practice run:
- Parameters: the settings every Game is generated from
- Games: every Game played so far, in play order
- GameState: the live cursor on the attempt in progress

All models are frozen and hold tuples, so a snapshot handed to a reader
can never change underneath it. Reducers build new snapshots with
model_copy(update=...).
"""

from enum import IntEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chordquiz.models.theory import Accidentals, Chord, get_chord_type, pitch_class


DEFAULT_CHORD_TYPES: tuple[str, ...] = ("M", "m", "7", "maj7", "m7")


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class MatchStatus(IntEnum):
    """How well an attempt matches the expected chord. Higher dominates."""

    NONE = -1  # nothing observed yet
    WRONG = 0
    PARTIAL = 1  # near miss
    ALTERNATE = 2  # same notes, different name (inversion, synonym)
    CORRECT = 3

    @property
    def is_success(self) -> bool:
        """Whether a released attempt at this level counts as succeeded."""
        return self > MatchStatus.PARTIAL


# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------


class Parameters(BaseModel):
    """Settings a Game is generated from."""

    model_config = ConfigDict(frozen=True)

    key: str = "C"
    accidentals: Accidentals = "flat"
    chord_types: tuple[str, ...] = DEFAULT_CHORD_TYPES
    game_length: int = Field(default=8, ge=1)
    diatonic: bool = False

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        return pitch_class(v)

    @field_validator("chord_types")
    @classmethod
    def validate_chord_types(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        unknown = [t for t in v if get_chord_type(t) is None]
        if unknown:
            raise ValueError(f"Unknown chord types: {unknown}")
        return v


# -----------------------------------------------------------------------------
# Game timer
# -----------------------------------------------------------------------------


class NotStarted(BaseModel):
    """No note has been held since the session began."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["not_started"] = "not_started"


class Running(BaseModel):
    """Timing since the first held note."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["running"] = "running"
    since: float


class Ended(BaseModel):
    """The follow-on Game was generated; the next held note restarts the clock."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ended"] = "ended"


GameTimer = Annotated[Union[NotStarted, Running, Ended], Field(discriminator="kind")]


# -----------------------------------------------------------------------------
# Game and GameState
# -----------------------------------------------------------------------------


class Game(BaseModel):
    """One fixed-length sequence of target chords and its results."""

    model_config = ConfigDict(frozen=True)

    chords: tuple[Chord, ...] = Field(min_length=1)
    played: tuple[Chord | None, ...] = ()
    score: int = Field(default=0, ge=0)
    succeeded: int = Field(default=0, ge=0)

    # None until at least one chord past the first has been released
    time_per_chord_seconds: float | None = None

    @property
    def length(self) -> int:
        return len(self.chords)

    @property
    def completed(self) -> bool:
        return len(self.played) >= len(self.chords)


class GameState(BaseModel):
    """The live cursor on the attempt in progress."""

    model_config = ConfigDict(frozen=True)

    game_index: int = Field(default=0, ge=0)
    index: int = Field(default=0, ge=0)
    status: MatchStatus = MatchStatus.NONE
    chord: Chord | None = None
    score: int = 0
    timer: GameTimer = NotStarted()
    elapsed_seconds: float | None = None


class Session(BaseModel):
    """Settings, every Game so far, and the live cursor."""

    model_config = ConfigDict(frozen=True)

    parameters: Parameters = Parameters()
    games: tuple[Game, ...] = ()
    game_state: GameState = GameState()

    @property
    def current_game(self) -> Game | None:
        """The Game the cursor points at, or None if there is none."""
        if self.game_state.game_index < len(self.games):
            return self.games[self.game_state.game_index]
        return None

    @property
    def expected_chord(self) -> Chord | None:
        """The target chord of the attempt in progress."""
        game = self.current_game
        if game is None or self.game_state.index >= len(game.chords):
            return None
        return game.chords[self.game_state.index]

    @property
    def ended(self) -> bool:
        """True when the cursor has moved past the last generated Game."""
        return self.current_game is None
