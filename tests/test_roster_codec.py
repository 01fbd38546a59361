"""Roster-script codec tests."""

from __future__ import annotations

import codecs

import pytest

from rosterlab.errors import ConflictError, EntryNotFound, RosterScriptError
from rosterlab.roster import (
    BlankLine,
    CommentLine,
    Directive,
    EntryKind,
    EntryLine,
    GridPosition,
    SectionHeader,
    SlotType,
    UnknownLine,
    codec,
)

SCRIPT = (
    "; Roster for the arcade build\r\n"
    "[Characters]\r\n"
    "kfm, stages/kfm.def, music=sound/kfm.mp3 ; mascot @grid=1,2\r\n"
    ";suika\r\n"
    "randomselect\r\n"
    "chars/ryu/ryu-hd.def, order=3\n"
    "\r\n"
    "[ExtraStages]\r\n"
    "stages/kfm.def\r\n"
    "  weird line without comma\r\n"
    "\r\n"
    "[Options]\r\n"
    "arcade.maxmatches = 6,1,1,0,0,0,0,0,0,0 ; tuned\r\n"
)


def _text(model) -> str:
    return codec.render(model)


def test_parse_and_render_round_trips_exactly() -> None:
    model = codec.parse(SCRIPT)

    assert _text(model) == SCRIPT
    assert [type(line) for line in model.lines[:6]] == [
        CommentLine,
        SectionHeader,
        EntryLine,
        EntryLine,
        EntryLine,
        EntryLine,
    ]
    assert isinstance(model.lines[6], BlankLine)


def test_parse_bytes_keeps_bom_and_legacy_encoding() -> None:
    utf8 = codecs.BOM_UTF8 + "[Characters]\nkfm\n".encode("utf-8")
    latin = "[Characters]\nCaf\xe9\n".encode("latin-1")

    utf8_model = codec.parse_bytes(utf8)
    latin_model = codec.parse_bytes(latin)

    assert utf8_model.bom is True
    assert codec.render_bytes(utf8_model) == utf8
    assert latin_model.encoding == "latin-1"
    assert codec.render_bytes(latin_model) == latin


def test_entry_fields_are_parsed() -> None:
    model = codec.parse(SCRIPT)
    kfm, suika, placeholder, ryu = model.entries(EntryKind.CHARACTER)

    assert kfm.item_id == "kfm"
    assert kfm.params == ("stages/kfm.def", "music=sound/kfm.mp3")
    assert kfm.grid == GridPosition(1, 2)
    assert kfm.comment == "mascot"
    assert suika.enabled is False
    assert suika.item_id == "suika"
    assert placeholder.slot is SlotType.RANDOM
    assert ryu.item_id == "ryu"
    assert ryu.selector == "ryu-hd.def"


def test_plain_comments_are_not_mistaken_for_disabled_entries() -> None:
    model = codec.parse("[Characters]\n; a note about the roster\n;;kfm\n;[stuff]\n")

    assert model.entries() == []
    assert all(isinstance(line, CommentLine) for line in model.lines[1:])


def test_stage_lines_and_directives_are_classified() -> None:
    model = codec.parse(SCRIPT)

    assert not any(isinstance(line, UnknownLine) for line in model.lines)
    stage_entries = model.entries(EntryKind.STAGE)
    assert [entry.item_id for entry in stage_entries] == ["kfm", "weird line without comma"]
    directives = model.directives("options")
    assert isinstance(directives[0], Directive)
    assert codec.get_directive(model, "Options", "arcade.maxmatches") == "6,1,1,0,0,0,0,0,0,0"


@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        ("kfm", ("kfm", None)),
        ("chars\\kfm\\kfm720.def", ("kfm", "kfm720.def")),
        ("Ryu.def", ("Ryu", "Ryu.def")),
        ("chars/Ryu/", ("Ryu", None)),
    ],
)
def test_character_identity(reference: str, expected: tuple[str, str | None]) -> None:
    assert codec.character_identity(reference) == expected


def test_stage_identity_strips_prefix() -> None:
    assert codec.stage_identity("stages\\Pack/Temple.def") == ("Temple", "Pack/Temple.def")
    assert codec.stage_identity("arena.def") == ("arena", "arena.def")


def test_disable_then_enable_restores_original_text() -> None:
    model = codec.parse(SCRIPT)

    disabled = codec.disable(model, EntryKind.CHARACTER, "KFM")
    assert ";kfm, stages/kfm.def" in _text(disabled)
    assert disabled.lines[3] is model.lines[3]

    enabled = codec.enable(disabled, EntryKind.CHARACTER, "kfm")
    assert _text(enabled) == SCRIPT


def test_enable_uncomments_disabled_entry_in_place() -> None:
    model = codec.parse(SCRIPT)

    enabled = codec.enable(model, EntryKind.CHARACTER, "suika")

    assert _text(enabled) == SCRIPT.replace(";suika\r\n", "suika\r\n")


def test_edits_on_unknown_ids_raise_entry_not_found() -> None:
    model = codec.parse(SCRIPT)

    with pytest.raises(EntryNotFound):
        codec.disable(model, EntryKind.CHARACTER, "nobody")
    with pytest.raises(EntryNotFound):
        codec.remove(model, EntryKind.STAGE, "kfm", "elsewhere/kfm.def")


def test_selector_limits_edits_to_one_sub_definition() -> None:
    model = codec.parse("[Characters]\nkfm\nkfm/kfm720.def\n")

    edited = codec.disable(model, EntryKind.CHARACTER, "kfm", "kfm720.def")

    assert _text(edited) == "[Characters]\nkfm\n;kfm/kfm720.def\n"


def test_add_appends_to_existing_section() -> None:
    model = codec.parse("[Characters]\nkfm\n\n[ExtraStages]\n")

    edited = codec.add(model, EntryKind.CHARACTER, "suika")

    assert _text(edited) == "[Characters]\nkfm\nsuika\n\n[ExtraStages]\n"


def test_add_creates_missing_section_and_keeps_bare_ending() -> None:
    model = codec.parse("; empty roster")

    edited = codec.add(model, EntryKind.STAGE, codec.stage_reference("temple"))

    assert _text(edited) == "; empty roster\n[ExtraStages]\nstages/temple.def"


def test_add_rejects_duplicate_identity() -> None:
    model = codec.parse("[Characters]\n;KFM\n")

    with pytest.raises(ConflictError):
        codec.add(model, EntryKind.CHARACTER, "kfm")


def test_add_with_position_and_grid() -> None:
    model = codec.parse("[Characters]\nkfm\nsuika\n")

    edited = codec.add(
        model, EntryKind.CHARACTER, "ryu", position=1, grid=GridPosition(0, 3), comment="new"
    )

    assert _text(edited) == "[Characters]\nkfm\nryu ; new @grid=0,3\nsuika\n"


def test_remove_deletes_enabled_and_disabled_lines() -> None:
    model = codec.parse("[Characters]\nkfm\n;kfm/kfm720.def\nsuika\n")

    edited = codec.remove(model, EntryKind.CHARACTER, "kfm")

    assert _text(edited) == "[Characters]\nsuika\n"


def test_reorder_moves_listed_ids_and_keeps_placeholders() -> None:
    model = codec.parse("[Characters]\nkfm\nrandomselect\nsuika\nryu\n")

    edited = codec.reorder(model, EntryKind.CHARACTER, ["ryu", "kfm", "ghost"])

    assert _text(edited) == "[Characters]\nryu\nrandomselect\nkfm\nsuika\n"


def test_reorder_keeps_each_slot_terminator() -> None:
    model = codec.parse("[Characters]\r\nkfm\r\nsuika\n")

    edited = codec.reorder(model, EntryKind.CHARACTER, ["suika"])

    assert _text(edited) == "[Characters]\r\nsuika\r\nkfm\n"


def test_rename_keeps_params_and_comments() -> None:
    model = codec.parse(SCRIPT)

    edited = codec.rename(model, EntryKind.CHARACTER, "ryu", "Ryu_HD")

    assert "chars/Ryu_HD/ryu-hd.def, order=3\n" in _text(edited)
    renamed_stage = codec.rename(model, EntryKind.STAGE, "kfm", "Training")
    assert "stages/Training.def\r\n" in _text(renamed_stage)


def test_relocate_stages_rewrites_folder_prefix() -> None:
    model = codec.parse("[ExtraStages]\nstages/old pack/arena.def\nstages/other/x.def\n")

    edited = codec.relocate_stages(model, "old pack", "Old_Pack")

    assert _text(edited) == "[ExtraStages]\nstages/Old_Pack/arena.def\nstages/other/x.def\n"


def test_set_directive_updates_value_in_place() -> None:
    model = codec.parse(SCRIPT)

    edited = codec.set_directive(model, "Options", "arcade.maxmatches", "8,1")

    assert "arcade.maxmatches = 8,1 ; tuned\r\n" in _text(edited)
    added = codec.set_directive(model, "Options", "team.maxmatches", "4")
    assert codec.get_directive(added, "options", "team.maxmatches") == "4"


def test_parse_rejects_nul_bytes_and_broken_headers() -> None:
    with pytest.raises(RosterScriptError):
        codec.parse("[Characters]\nkf\x00m\n")
    with pytest.raises(RosterScriptError):
        codec.parse("[Characters\nkfm\n")


def test_group_header_comments_are_not_entries() -> None:
    model = codec.parse(
        "[Characters]\n;---- Street Fighter ----\n;Add your characters below\n;kung fu man/kfm.def\n"
    )

    assert isinstance(model.lines[1], CommentLine)
    assert isinstance(model.lines[2], CommentLine)
    assert [entry.item_id for entry in model.entries()] == ["kung fu man"]


def test_reorder_leaves_comment_groups_in_place() -> None:
    script = "[Characters]\n;---- Street Fighter ----\nRyu\nKen\n;Add your characters below\nkfm\n"

    edited = codec.reorder(codec.parse(script), EntryKind.CHARACTER, ["kfm", "Ken", "Ryu"])

    assert _text(edited) == (
        "[Characters]\n;---- Street Fighter ----\nkfm\nKen\n;Add your characters below\nRyu\n"
    )


def test_reorder_keeps_disabled_entries_in_place() -> None:
    model = codec.parse("[Characters]\nkfm\n;suika\nryu\n")

    edited = codec.reorder(model, EntryKind.CHARACTER, ["ryu", "suika"])

    assert _text(edited) == "[Characters]\nryu\n;suika\nkfm\n"


def test_removing_missing_character_leaves_other_lines_untouched() -> None:
    script = (
        "; arcade roster\r\n"
        "[Characters]\r\n"
        "kfm, stages/kfm.def\r\n"
        "Ryu, order=2 ; listed but gone @grid=0,1\r\n"
        ";suika\r\n"
        "\r\n"
        "[ExtraStages]\r\n"
        "stages/Bifrost.def\n"
    )

    edited = codec.remove(codec.parse(script), EntryKind.CHARACTER, "ryu")

    assert _text(edited) == script.replace("Ryu, order=2 ; listed but gone @grid=0,1\r\n", "")


def test_disable_stage_comments_line_in_place() -> None:
    script = "[ExtraStages]\nstages/Training.def\nstages/Bifrost.def\nstages/Temple.def\n"

    edited = codec.disable(codec.parse(script), EntryKind.STAGE, "Bifrost")

    assert _text(edited) == (
        "[ExtraStages]\nstages/Training.def\n;stages/Bifrost.def\nstages/Temple.def\n"
    )
    assert [entry.enabled for entry in edited.entries(EntryKind.STAGE)] == [True, False, True]
