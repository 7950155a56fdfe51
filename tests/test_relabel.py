import pytest

from tempoagent.relabel import RelabelAction, RelabelConfig, process


def test_replace_joins_source_labels_with_separator():
    cfg = RelabelConfig(source_labels=("a", "b"), target_label="c")
    assert process({"a": "x", "b": "y"}, [cfg]) == {"a": "x", "b": "y", "c": "x;y"}


def test_replace_with_capture_group():
    cfg = RelabelConfig(
        source_labels=("__address__",),
        regex=r"(.*):(\d+)",
        replacement="$2",
        target_label="port",
    )
    result = process({"__address__": "h:80"}, [cfg])
    assert result["port"] == "80"


def test_replace_with_named_group():
    cfg = RelabelConfig(
        source_labels=("host",),
        regex=r"(?P<short>[^.]+)\..*",
        replacement="${short}",
        target_label="node",
    )
    assert process({"host": "web.internal"}, [cfg])["node"] == "web"


def test_replace_target_label_template():
    cfg = RelabelConfig(source_labels=("k",), target_label="${1}")
    assert process({"k": "dest"}, [cfg]) == {"k": "dest", "dest": "dest"}


def test_replace_invalid_expanded_target_leaves_labels():
    cfg = RelabelConfig(source_labels=("k",), target_label="${1}")
    assert process({"k": "1bad"}, [cfg]) == {"k": "1bad"}


def test_replace_without_match_is_noop():
    cfg = RelabelConfig(source_labels=("k",), regex="nomatch", target_label="t")
    assert process({"k": "value"}, [cfg]) == {"k": "value"}


def test_replace_empty_result_deletes_target():
    cfg = RelabelConfig(source_labels=("missing",), target_label="t")
    assert process({"t": "v"}, [cfg]) == {}


def test_keep_and_drop_are_anchored():
    keep = RelabelConfig(source_labels=("env",), regex="prod", action="keep")
    assert process({"env": "prod"}, [keep]) == {"env": "prod"}
    assert process({"env": "production"}, [keep]) is None
    drop = RelabelConfig(source_labels=("env",), regex="prod", action=RelabelAction.DROP)
    assert process({"env": "prod"}, [drop]) is None
    assert process({"env": "dev"}, [drop]) == {"env": "dev"}


def test_drop_stops_the_chain():
    drop = RelabelConfig(source_labels=("env",), regex="dev", action="drop")
    later = RelabelConfig(source_labels=("env",), target_label="copy")
    assert process({"env": "dev"}, [drop, later]) is None


def test_hashmod_is_bounded_and_deterministic():
    cfg = RelabelConfig(
        source_labels=("__address__",), modulus=7, target_label="shard", action="hashmod"
    )
    first = process({"__address__": "10.0.0.1:80"}, [cfg])["shard"]
    second = process({"__address__": "10.0.0.1:80"}, [cfg])["shard"]
    assert first == second
    assert 0 <= int(first) < 7


def test_labelmap_copies_matching_names():
    cfg = RelabelConfig(regex="__meta_(.+)", replacement="$1", action="labelmap")
    result = process({"__meta_zone": "eu", "other": "x"}, [cfg])
    assert result == {"__meta_zone": "eu", "other": "x", "zone": "eu"}


def test_labeldrop_and_labelkeep():
    drop = RelabelConfig(regex="tmp_.*", action="labeldrop")
    assert process({"tmp_a": "1", "keep": "2"}, [drop]) == {"keep": "2"}
    keep = RelabelConfig(regex="keep|__address__", action="labelkeep")
    assert process({"tmp_a": "1", "keep": "2", "__address__": "h"}, [keep]) == {
        "keep": "2",
        "__address__": "h",
    }


def test_process_does_not_mutate_input():
    labels = {"a": "x"}
    process(labels, [RelabelConfig(source_labels=("a",), target_label="b")])
    assert labels == {"a": "x"}


def test_from_dict_parses_fields():
    cfg = RelabelConfig.from_dict(
        {"source_labels": ["a", "b"], "separator": "-", "target_label": "c", "action": "Replace"}
    )
    assert cfg.action is RelabelAction.REPLACE
    assert cfg.source_labels == ("a", "b")
    assert process({"a": "1", "b": "2"}, [cfg])["c"] == "1-2"


@pytest.mark.parametrize(
    "data",
    [
        {"action": "hashmod", "target_label": "t"},
        {"action": "replace"},
        {"action": "replace", "target_label": "1abc"},
        {"action": "labeldrop", "regex": "x", "target_label": "t"},
        {"action": "bogus", "target_label": "t"},
        {"regex": "(", "target_label": "t"},
        {"target_label": "t", "unknown": 1},
    ],
)
def test_from_dict_rejects_invalid(data):
    with pytest.raises(ValueError):
        RelabelConfig.from_dict(data)