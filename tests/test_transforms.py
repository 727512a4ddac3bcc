import pytest

from clipdecode import (
    PROJECT_ROOT,
    coerce_value,
    get_chains,
    get_transform_overrides,
    load_transform,
    resolve_steps,
    scan_transforms,
)
from text_decoder import encode

TRANSFORMS = PROJECT_ROOT / "transforms"


def test_scan_finds_base64_scripts_and_chains(registry):
    names = [e["name"] for e in registry]
    assert names[:3] == ["base64_decode", "base64_encode", "base64_hex_dump"]
    assert "double_decode" in names
    for entry in registry:
        if not entry["is_chain"]:
            assert entry["fn"] is not None, entry["description"]


def test_descriptions_come_from_docstrings(registry):
    by_name = {e["name"]: e for e in registry}
    assert by_name["base64_decode"]["description"] == \
        "Base64-decode the clipboard text back to a UTF-8 string."
    assert by_name["base64_decode"]["label"] == "Base64 Decode"


def test_decode_transform():
    fn, path, _ = load_transform(str(TRANSFORMS / "base64_decode.py"))
    assert path.endswith("base64_decode.py")
    assert fn("data:text/plain;base64,SGVsbG8=") == "Hello"
    assert fn("//8=") == "\ufffd\ufffd"
    assert fn("not-valid-base64!").startswith("[base64 decode error:")


def test_encode_transform():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_encode.py"))
    assert fn("Hello") == "SGVsbG8="


def test_hex_dump_transform():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_hex_dump.py"))
    dump = fn(encode("Hello\n"))
    assert dump.startswith("00000000  48 65 6c 6c 6f 0a")
    assert dump.endswith("|Hello.|")
    assert fn("") == ""
    assert fn("SGVsbG8").startswith("[base64 decode error:")


def test_hex_dump_rows():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_hex_dump.py"))
    lines = fn(encode("x" * 20)).splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("00000010  78 78 78 78")


def test_overrides_set_module_constants():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_decode.py"), {"strict_utf8": "yes"})
    assert fn("//8=").startswith("[utf-8 decode error:")

    dump, _, _ = load_transform(str(TRANSFORMS / "base64_hex_dump.py"), {"width": "4"})
    assert len(dump(encode("abcdefgh")).splitlines()) == 2


def test_overrides_do_not_leak_between_loads():
    load_transform(str(TRANSFORMS / "base64_decode.py"), {"strict_utf8": "yes"})
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_decode.py"))
    assert fn("//8=") == "\ufffd\ufffd"


@pytest.mark.parametrize("raw, expected", [
    ("3", 3),
    ("0.25", 0.25),
    ("yes", True),
    ("Off", False),
    ("ctrl+shift+d", "ctrl+shift+d"),
])
def test_coerce_value(raw, expected):
    assert coerce_value(raw) == expected
    assert type(coerce_value(raw)) is type(expected)


def test_load_transform_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_transform(str(tmp_path / "nope.py"))


def test_load_transform_requires_transform_function(tmp_path):
    script = tmp_path / "empty.py"
    script.write_text('"""Nothing here."""\n', encoding="utf-8")
    with pytest.raises(AttributeError):
        load_transform(str(script))


def test_scan_reports_load_errors_and_skips_private(tmp_path, ini):
    (tmp_path / "good.py").write_text(
        '"""Upper-case it."""\n\ndef transform(text):\n    return text.upper()\n',
        encoding="utf-8",
    )
    (tmp_path / "broken.py").write_text("raise RuntimeError('boom')\n", encoding="utf-8")
    (tmp_path / "_helper.py").write_text("X = 1\n", encoding="utf-8")

    cfg = ini("[chain:shout]\nsteps = good, good\n")
    registry = scan_transforms(str(tmp_path), cfg)
    by_name = {e["name"]: e for e in registry}

    assert set(by_name) == {"good", "broken", "shout"}
    assert by_name["good"]["fn"]("hi") == "HI"
    assert by_name["broken"]["fn"] is None
    assert by_name["broken"]["label"] == "⚠ broken"
    assert "boom" in by_name["broken"]["description"]
    assert registry[-1]["is_chain"]


def test_scan_missing_folder(tmp_path, ini):
    assert scan_transforms(str(tmp_path / "missing"), ini("")) == []


def test_get_chains(ini):
    cfg = ini(
        "[chain:double_decode]\n"
        "description = Twice\n"
        "steps = base64_decode, , base64_decode\n"
    )
    chains = get_chains(cfg)
    assert chains == [{
        "name": "double_decode",
        "label": "⛓ Double Decode",
        "description": "Twice",
        "steps": ["base64_decode", "base64_decode"],
        "is_chain": True,
        "fn": None,
    }]


def test_get_transform_overrides(ini):
    cfg = ini("[transform:base64_decode]\nStrict_UTF8 = yes\n")
    assert get_transform_overrides(cfg, "base64_decode") == {"strict_utf8": "yes"}
    assert get_transform_overrides(cfg, "base64_encode") == {}


def test_resolve_steps_expands_chains(registry):
    steps = resolve_steps(registry, ["base64_encode", "double_decode"])
    assert [s["name"] for s in steps] == ["base64_encode", "base64_decode", "base64_decode"]


def test_resolve_steps_unknown_names(registry, ini):
    with pytest.raises(KeyError):
        resolve_steps(registry, ["rot13"])

    broken = registry + [{"name": "bad_chain", "is_chain": True, "steps": ["rot13"], "fn": None}]
    with pytest.raises(KeyError):
        resolve_steps(broken, ["bad_chain"])


def test_defaults_set_declared_constants_only():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_decode.py"),
                              defaults={"strict_utf8": True, "urlsafe": True})
    assert fn("//8=").startswith("[utf-8 decode error:")
    assert fn("Pz4-") == "?>>"

    enc, _, _ = load_transform(str(TRANSFORMS / "base64_encode.py"),
                               defaults={"strict_utf8": True, "urlsafe": True})
    assert enc("?>>") == "Pz4-"


def test_transform_section_wins_over_defaults():
    fn, _, _ = load_transform(str(TRANSFORMS / "base64_decode.py"),
                              overrides={"strict_utf8": "no"},
                              defaults={"strict_utf8": True})
    assert fn("//8=") == "\ufffd\ufffd"


def test_scan_applies_tool_defaults(cfg):
    registry = scan_transforms(str(TRANSFORMS), cfg, defaults={"strict_utf8": True})
    steps = resolve_steps(registry, ["base64_decode"])
    assert steps[0]["fn"]("//8=").startswith("[utf-8 decode error:")


def test_decode_script_exposes_result(registry):
    by_name = {e["name"]: e for e in registry}
    result = by_name["base64_decode"]["result_fn"]("not-valid-base64!")
    assert not result.ok
    assert by_name["base64_encode"]["result_fn"] is None
