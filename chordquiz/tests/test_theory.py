"""Tests for the music theory helpers."""

import pytest

from chordquiz.models.theory import (
    CHORD_TYPES,
    Chord,
    detect_chords,
    get_chord,
    get_chord_type,
    interval_semitones,
    major_scale,
    note_chroma,
    pitch_class,
    pitch_class_name,
)


class TestNotes:
    """Tests for note names and pitch classes."""

    def test_note_chroma(self):
        assert note_chroma("C") == 0
        assert note_chroma("Eb") == 3
        assert note_chroma("F#") == 6
        assert note_chroma("B#") == 0
        assert note_chroma("Cb") == 11
        assert note_chroma("g4") == 7

    def test_invalid_note(self):
        with pytest.raises(ValueError):
            note_chroma("H")
        with pytest.raises(ValueError):
            note_chroma("")
        with pytest.raises(ValueError):
            note_chroma("4")
        with pytest.raises(ValueError):
            note_chroma("C~")

    def test_pitch_class_normalizes(self):
        assert pitch_class("eb4") == "Eb"
        assert pitch_class(" c# ") == "C#"

    def test_pitch_class_name(self):
        assert pitch_class_name(1) == "Db"
        assert pitch_class_name(1, "sharp") == "C#"
        assert pitch_class_name(13) == "Db"

    def test_major_scale(self):
        assert major_scale("C") == ["C", "D", "E", "F", "G", "A", "B"]
        assert major_scale("F") == ["F", "G", "A", "Bb", "C", "D", "E"]
        assert major_scale("D", "sharp") == ["D", "E", "F#", "G", "A", "B", "C#"]


class TestIntervals:
    """Tests for interval parsing."""

    @pytest.mark.parametrize(
        "interval,semitones",
        [
            ("1P", 0),
            ("3M", 4),
            ("3m", 3),
            ("5P", 7),
            ("5d", 6),
            ("5A", 8),
            ("7d", 9),
            ("9m", 13),
            ("11A", 18),
            ("13M", 21),
        ],
    )
    def test_semitones(self, interval, semitones):
        assert interval_semitones(interval) == semitones

    def test_invalid_quality_for_degree(self):
        with pytest.raises(ValueError):
            interval_semitones("5M")
        with pytest.raises(ValueError):
            interval_semitones("3P")

    def test_malformed(self):
        with pytest.raises(ValueError):
            interval_semitones("M3")


class TestChordTypes:
    """Tests for the chord-type catalog."""

    def test_symbols_are_unique(self):
        symbols = [t.symbol for t in CHORD_TYPES]
        assert len(symbols) == len(set(symbols))

    def test_lookup_by_alias_and_name(self):
        assert get_chord_type("maj7").name == "major seventh"
        assert get_chord_type("Δ").symbol == "maj7"
        assert get_chord_type("dominant seventh").symbol == "7"
        assert get_chord_type("nope") is None

    def test_chroma(self):
        assert get_chord_type("M").chroma == frozenset({0, 4, 7})
        assert get_chord_type("m7b5").chroma == frozenset({0, 3, 6, 10})


class TestChord:
    """Tests for concrete chords."""

    def test_type_is_normalized(self):
        chord = Chord(tonic="c", type="maj")
        assert chord.tonic == "C"
        assert chord.type == "M"
        assert chord.symbol == "CM"
        assert chord.name == "C major"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            Chord(tonic="C", type="nope")

    def test_notes(self):
        assert get_chord("m7", "D").notes == ("D", "F", "A", "C")
        assert get_chord("M", "Eb").notes == ("Eb", "G", "Bb")
        assert get_chord("M", "F#").notes == ("F#", "A#", "C#")

    def test_notes_are_spelled_by_interval(self):
        assert get_chord("dim7", "C").notes == ("C", "Eb", "Gb", "Bbb")
        assert get_chord("m#5", "A#").notes == ("A#", "C#", "E##")

    def test_enharmonic_equality(self):
        assert get_chord("M", "C#") == get_chord("M", "Db")
        assert hash(get_chord("M", "C#")) == hash(get_chord("M", "Db"))
        assert get_chord("M", "C") != get_chord("m", "C")

    def test_serializes_display_fields(self):
        data = get_chord("7", "G").model_dump()
        assert data["symbol"] == "G7"
        assert data["notes"] == ("G", "B", "D", "F")
        assert Chord.model_validate(data) == get_chord("7", "G")


class TestDetectChords:
    """Tests for chord detection from held pitch classes."""

    def test_major_triad(self):
        chords = detect_chords(["C", "E", "G"])
        assert chords[0] == get_chord("M", "C")

    def test_bass_first(self):
        # A C E G: Am7 in root position, C6 as the alternative
        chords = detect_chords(["A", "C", "E", "G"])
        assert chords[0] == get_chord("m7", "A")
        assert get_chord("6", "C") in chords

    def test_enabled_filter(self):
        chords = detect_chords(["A", "C", "E", "G"], enabled=["6"])
        assert chords == [get_chord("6", "C")]

    def test_no_match(self):
        assert detect_chords(["C", "Db", "D"]) == []

    def test_empty(self):
        assert detect_chords([]) == []

    def test_octave_duplicates_ignored(self):
        chords = detect_chords(["C3", "E3", "G3", "C4"])
        assert chords[0] == get_chord("M", "C")
