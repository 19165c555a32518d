from concurrent.futures import ThreadPoolExecutor

import pytest

import jtree_parser as jp
from jtree_errors import (
    JSONTreeError,
    MalformedStructureError,
    ResourceLimitError,
    UnsupportedConstructError,
)
from jtree_values import ValueKind

SCENARIO = '{ "item1" : "value1", "item3" : { "sub1" : "subvalue1" }, "item4" : [ "first", "second" ] }'

# Members separated only by line breaks, indented with tabs
LINE_BROKEN = (
    "{\n"
    "\t\"item1\" : \"value1\"\n"
    "\t\"item2\" : \"value2\"\n"
    "\t\"item3\" : {\n"
    "\t\t\"sub1\" : \"subvalue1\"\n"
    "\t\t\"sub2\" : \"subvalue2\"\n"
    "\t}\n"
    "\t\"item4\" : [ \"first\", \"second\", \"third\", \"fourth\" ]\n"
    "}"
)


def nested(depth):
    return '{"k":' * depth + '{"leaf":1}' + "}" * depth


def test_scenario_tree():
    doc = jp.parse(SCENARIO)
    root = doc.root
    assert root.name == "root"
    assert root.count == 3
    assert root.names() == ["item1", "item3", "item4"]
    assert doc["item1"].as_string() == "value1"

    item3 = doc["item3"]
    assert item3.kind is ValueKind.OBJECT
    sub = item3.as_object()
    assert sub.count == 1
    assert sub["sub1"].as_string() == "subvalue1"

    block = doc["item4"].as_array()
    assert [e.as_string() for e in block] == ["first", "second"]
    assert [e.kind for e in block] == [ValueKind.STRING, ValueKind.STRING]
    doc.release()


def test_flat_string_members_keep_order():
    pairs = [(f"key{i}", f"val{i}") for i in range(12)]
    text = "{" + ", ".join(f'"{k}" : "{v}"' for k, v in pairs) + "}"
    with jp.parse(text) as doc:
        assert [v.name for v in doc] == [k for k, _ in pairs]
        for k, v in pairs:
            assert doc[k].as_string() == v


def test_members_separated_by_line_breaks():
    with jp.parse(LINE_BROKEN) as doc:
        assert doc.root.names() == ["item1", "item2", "item3", "item4"]
        sub = doc["item3"].as_object()
        assert sub["sub2"].as_string() == "subvalue2"
        assert len(doc["item4"].as_array()) == 4


def test_blank_indented_lines_between_members():
    with jp.parse('{\n  "a": 1,\n  \n  "b": 2\n}') as doc:
        assert doc.root.names() == ["a", "b"]
    with jp.parse('{\n  \t"a": 1\n}') as doc:
        assert doc["a"].as_number() == 1


def test_blank_indented_line_is_not_a_value():
    with pytest.raises(MalformedStructureError) as ei:
        jp.parse('{"a":\n  \n}')
    assert "member 'a' has no value" in str(ei.value)


def test_blank_indented_line_is_not_an_array_element():
    with jp.parse('{"a": [1\n  \n]}') as doc:
        block = doc["a"].as_array()
        assert len(block) == 1
        assert block[0].as_number() == 1
    with pytest.raises(MalformedStructureError) as ei:
        jp.parse('{"a": [1,\n  \n]}')
    assert "trailing comma in array" in str(ei.value)


def test_empty_bare_word_is_rejected():
    ctx = jp.ParseContext("}")
    ctx.tokens.advance()
    with pytest.raises(MalformedStructureError) as ei:
        jp._read_bare(ctx)
    assert "empty bare word at offset 1" in str(ei.value)
    ctx.abandon()
    assert ctx.ledger.outstanding == 0


def test_compact_input_without_spaces():
    with jp.parse('{"a":"x","b":{"c":"y"},"d":[1,2]}') as doc:
        assert doc["b"].as_object()["c"].as_string() == "y"
        assert [e.as_number() for e in doc["d"].as_array()] == [1, 2]


def test_numbers():
    with jp.parse('{"pos": 42, "neg": -42, "zero": 0, "padded": 007}') as doc:
        assert doc["pos"].as_number() == 42
        assert doc["neg"].as_number() == -42
        assert doc["zero"].as_number() == 0
        assert doc["padded"].as_number() == 7


def test_bare_words_are_boolean_or_null():
    with jp.parse('{"t": true, "f": false, "n": null, "w": maybe}') as doc:
        assert doc["t"].kind is ValueKind.BOOLEAN
        assert doc["t"].as_boolean() == "true"
        assert doc["f"].as_boolean() == "false"
        assert doc["n"].as_null() == "null"
        assert doc["w"].kind is ValueKind.NULL
        assert doc["w"].as_null() == "maybe"


def test_strings_are_not_unescaped():
    with jp.parse(r'{"path": "C:\\temp", "q": "a\"b"}') as doc:
        assert doc["path"].as_string() == r"C:\\temp"
        assert doc["q"].as_string() == r'a\"b'


def test_empty_object_and_empty_member_object():
    with jp.parse("{}") as doc:
        assert doc.root.count == 0
    with jp.parse('{"e": {}}') as doc:
        assert doc["e"].as_object().count == 0


def test_nested_objects_are_independent():
    with jp.parse('{"a": {"x": 1, "b": {"x": 2}}, "x": 3}') as doc:
        a = doc["a"].as_object()
        b = a["b"].as_object()
        assert a["x"].as_number() == 1
        assert b["x"].as_number() == 2
        assert doc["x"].as_number() == 3
        assert b.name is None


def test_members_after_nested_object_go_to_outer_parent():
    with jp.parse('{"a": {"b": {"c": 1}}, "d": 2}') as doc:
        assert doc.root.names() == ["a", "d"]
        assert doc["a"].as_object().names() == ["b"]


def test_array_elements_named_by_position():
    with jp.parse('{"arr": ["s", -3, 5, true, null]}') as doc:
        block = doc["arr"].as_array()
        assert len(block) == 5
        assert [e.name for e in block] == ["#0", "#1", "#2", "#3", "#4"]
        assert [e.kind for e in block] == [
            ValueKind.STRING, ValueKind.NUMBER, ValueKind.NUMBER, ValueKind.BOOLEAN, ValueKind.NULL,
        ]
        assert block.lookup("#1").as_number() == -3
        assert block[4].as_null() == "null"


def test_array_iteration_stops_after_last_element():
    with jp.parse('{"arr": [1, 2, 3]}') as doc:
        seen = list(doc["arr"].as_array())
        assert len(seen) == 3
        assert [e.as_number() for e in seen] == [1, 2, 3]


def test_empty_array():
    with jp.parse('{"arr": [ ]}') as doc:
        assert len(doc["arr"].as_array()) == 0


def test_member_after_array():
    with jp.parse('{"arr": [1], "next": "v"}') as doc:
        assert doc.root.names() == ["arr", "next"]
        assert doc["next"].as_string() == "v"


def test_duplicate_keys_allowed_by_default_first_wins():
    with jp.parse('{"a": 1, "a": 2}') as doc:
        assert doc.root.count == 2
        assert doc["a"].as_number() == 1


def test_duplicate_keys_rejected_on_request():
    with pytest.raises(MalformedStructureError) as ei:
        jp.parse('{"a": 1, "a": 2}', allow_dup=False)
    assert "duplicate key 'a'" in str(ei.value)


def test_duplicate_check_is_per_object():
    with jp.parse('{"a": {"a": 1}}', allow_dup=False) as doc:
        assert doc["a"].as_object()["a"].as_number() == 1


def test_parse_bounded_slice():
    text = 'junk{"a": 1}junk'
    with jp.parse(text, start=4, end=12) as doc:
        assert doc["a"].as_number() == 1


# ---------------------------------------------------------------------------
# REJECTION
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("text, fragment", [
    ('', "document must open with '{'"),
    ('["a"]', "document must open with '{'"),
    ('{"a": "b"', "unexpected end of input: 1 unclosed object(s)"),
    ('{"a": {"b": 1}', "unexpected end of input: 1 unclosed object(s)"),
    ('{"a": {"b": {', "unexpected end of input"),
    ('{"a": }', "member 'a' has no value"),
    ('{"a": ', "member 'a' has no value"),
    ('{"a" "b"}', "expected ':' after member name 'a'"),
    ('{"a": "b}', "unterminated string"),
    ('{"a": 1}}', "extra data after root object"),
    ('{"a": 1} x', "extra data after root object"),
    ('{a: 1}', "unexpected bare word where a member name was expected"),
    ('{1: 1}', "unexpected number where a member name was expected"),
    ('{"a": - 1}', "expected digits after '-'"),
    ('{"a": 1 :}', "unexpected ':'"),
    ('{"a": 1 ]}', "unexpected ']'"),
    ('{"a": [1 2]}', "expected ',' or ']' in array"),
    ('{"a": [1,]}', "trailing comma in array"),
    ('{"a": [,1]}', "unexpected ',' in array"),
    ('{"a": [1, 2', "unterminated array"),
    ('{"a": [1, ', "unterminated array"),
    ('{"a": [1, }', "unexpected '}' in array"),
])
def test_malformed_structure(text, fragment):
    with pytest.raises(MalformedStructureError) as ei:
        jp.parse(text)
    assert fragment in str(ei.value)
    assert ei.value.category == "malformed-structure"


def test_unbalanced_close_is_not_silently_accepted():
    with pytest.raises(MalformedStructureError):
        jp.parse('{"a": {"b": 1}}}')


@pytest.mark.parametrize("text, fragment", [
    ('{"a": [ [ ] ]}', "nested arrays are not supported"),
    ('{"a": ["x", [1]]}', "nested arrays are not supported"),
    ('{"a": [{"b": 1}]}', "objects inside arrays are not supported"),
    ('{"a": 1.5}', "decimal and exponent numbers are not supported"),
    ('{"a": 1e5}', "decimal and exponent numbers are not supported"),
    ('{"a": [2E3]}', "decimal and exponent numbers are not supported"),
])
def test_unsupported_constructs(text, fragment):
    with pytest.raises(UnsupportedConstructError) as ei:
        jp.parse(text)
    assert fragment in str(ei.value)
    assert ei.value.category == "unsupported-construct"


def test_errors_are_syntax_errors_with_offsets():
    with pytest.raises(SyntaxError) as ei:
        jp.parse('{"a": [ [ ] ]}')
    assert isinstance(ei.value, JSONTreeError)
    assert ei.value.position == 8
    assert "at offset 8" in str(ei.value)


def test_overlong_number_is_resource_limit():
    with pytest.raises(ResourceLimitError):
        jp.parse('{"a": ' + "9" * (jp.NUMBER_DIGITS_MAX + 1) + "}")
    with jp.parse('{"a": ' + "9" * jp.NUMBER_DIGITS_MAX + "}") as doc:
        assert doc["a"].as_number() == int("9" * jp.NUMBER_DIGITS_MAX)


# ---------------------------------------------------------------------------
# DEPTH LIMIT
# ---------------------------------------------------------------------------
def test_depth_exactly_at_limit_succeeds():
    with jp.parse(nested(8), max_depth=8) as doc:
        node = doc.root
        for _ in range(8):
            node = node["k"].as_object()
        assert node["leaf"].as_number() == 1


def test_depth_one_past_limit_is_resource_limit():
    with pytest.raises(ResourceLimitError) as ei:
        jp.parse(nested(9), max_depth=8)
    assert "nesting depth limit 8 exceeded" in str(ei.value)
    assert ei.value.category == "resource-limit"


def test_default_depth_boundary():
    limit = jp.DEPTH_LIMIT_DEFAULT
    doc = jp.parse(nested(limit))
    doc.release()
    assert doc.ledger.outstanding == 0
    with pytest.raises(ResourceLimitError):
        jp.parse(nested(limit + 1))


def test_zero_depth_allows_flat_documents_only():
    with jp.parse('{"a": 1}', max_depth=0) as doc:
        assert doc["a"].as_number() == 1
    with pytest.raises(ResourceLimitError):
        jp.parse('{"a": {}}', max_depth=0)


# ---------------------------------------------------------------------------
# CONTEXT
# ---------------------------------------------------------------------------
def test_parent_stack_underflow_is_invariant_violation():
    stack = jp.ParentStack(4)
    with pytest.raises(AssertionError):
        stack.pop()


def test_independent_parses_run_concurrently():
    texts = [f'{{"id": {i}, "tag": "t{i}", "sub": {{"n": -{i}}}, "arr": [{i}, "x"]}}' for i in range(40)]

    def work(text):
        with jp.parse(text) as doc:
            return (doc["id"].as_number(), doc["tag"].as_string(),
                    doc["sub"].as_object()["n"].as_number(), len(doc["arr"].as_array()))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(work, texts))
    assert results == [(i, f"t{i}", -i, 2) for i in range(40)]


def test_parse_inside_parse_is_safe():
    outer = jp.ParseContext('{"a": 1}')
    inner = jp.parse('{"b": 2}')
    jp._build(outer)
    assert outer.document["a"].as_number() == 1
    assert inner["b"].as_number() == 2
    outer.document.release()
    inner.release()
