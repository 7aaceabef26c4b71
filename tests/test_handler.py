import json
import logging

from loro.handler import (
    NOT_PROVIDED,
    AgeInput,
    AgeKind,
    ExtractedFields,
    extract_fields,
    format_age,
    format_email,
    format_fields,
    format_name,
    handler,
    parse_int32,
)


def post(body, query=None):
    return {"method": "POST", "path": "/api/LoroHttpTrigger", "query": query or {}, "headers": {}, "body": body}


def get(query=None):
    return {"method": "GET", "path": "/api/LoroHttpTrigger", "query": query or {}, "headers": {}, "body": ""}


def run(event):
    result = handler(event, {"function": "LoroHttpTrigger"})
    assert result["statusCode"] == 200
    return result["body"]


def test_format_name():
    assert format_name(None) == NOT_PROVIDED
    assert format_name("") == NOT_PROVIDED
    assert format_name("   ") == NOT_PROVIDED
    assert format_name("john DOE") == "John Doe"
    assert format_name("MCDONALD") == "Mcdonald"
    # spacing is kept as given
    assert format_name("  mary   ann ") == "  Mary   Ann "


def test_format_email():
    assert format_email("JOHN@Example.COM") == "john@example.com"
    assert format_email("") == NOT_PROVIDED
    assert format_email(None) == NOT_PROVIDED
    assert format_email("\t\n") == NOT_PROVIDED
    # no validation, only lower-casing
    assert format_email("Not An Email") == "not an email"


def test_format_age():
    assert format_age(AgeInput.absent()) == NOT_PROVIDED
    assert format_age(AgeInput.integer(29)) == 29
    assert format_age(AgeInput.integer(0)) == 0
    assert format_age(AgeInput.text("29")) == 29
    assert format_age(AgeInput.text("abc")) == NOT_PROVIDED
    assert format_age(AgeInput.text("")) == NOT_PROVIDED


def test_parse_int32():
    assert parse_int32(" -7 ") == -7
    assert parse_int32("+5") == 5
    assert parse_int32("007") == 7
    assert parse_int32("2147483647") == 2147483647
    assert parse_int32("-2147483648") == -2147483648
    assert parse_int32("2147483648") is None
    assert parse_int32("1_000") is None
    assert parse_int32("12.5") is None
    assert parse_int32("- 3") is None
    assert parse_int32("٣") is None


def test_formatting_is_idempotent():
    fields = ExtractedFields(name="ZoE o'HARA", email="Z@X.IO", age=AgeInput.text("41"))
    assert format_fields(fields) == format_fields(fields)
    assert format_fields(fields) == {"name": "Zoe O'hara", "email": "z@x.io", "age": 41}


def test_post_body_fields():
    body = run(post(json.dumps({"name": "alice", "email": "ALICE@X.com", "age": 30})))
    assert body == {"name": "Alice", "email": "alice@x.com", "age": 30}


def test_empty_body_object_falls_back_to_query():
    body = run(post("{}", {"name": "bob", "age": "25"}))
    assert body == {"name": "Bob", "email": NOT_PROVIDED, "age": 25}


def test_malformed_body_is_not_an_error(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post("{not json", {"name": "carol"}))
    assert body == {"name": "Carol", "email": NOT_PROVIDED, "age": NOT_PROVIDED}
    assert any("Failed to parse JSON body" in r.getMessage() for r in caplog.records)


def test_request_start_is_logged(caplog):
    with caplog.at_level(logging.INFO, logger="loro.handler"):
        run(get())
    assert any(r.levelno == logging.INFO and "processed a request" in r.getMessage() for r in caplog.records)


def test_response_always_has_three_keys():
    for event in (get(), post(""), post("null"), post("[1, 2]"), post('{"age": {}}'), get({"age": ""})):
        assert set(run(event)) == {"name", "email", "age"}


def test_non_object_body_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post("[1, 2]", {"email": "A@B.C"}))
    assert body["email"] == "a@b.c"
    assert any("Failed to parse JSON body" in r.getMessage() for r in caplog.records)


def test_whitespace_body_is_skipped_quietly(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post("   ", {"name": "dan"}))
    assert body["name"] == "Dan"
    assert not caplog.records


def test_get_ignores_body():
    event = get({"name": "erin"})
    event["body"] = json.dumps({"name": "frank"})
    assert run(event)["name"] == "Erin"


def test_blank_body_strings_fall_back_to_query():
    body = run(post(json.dumps({"name": "   ", "email": ""}), {"name": "gina", "email": "G@Y.org"}))
    assert body["name"] == "Gina"
    assert body["email"] == "g@y.org"


def test_non_string_name_falls_back_to_query():
    body = run(post(json.dumps({"name": 12, "email": ["x"]}), {"name": "hal"}))
    assert body["name"] == "Hal"
    assert body["email"] == NOT_PROVIDED


def test_body_name_wins_over_query():
    body = run(post(json.dumps({"name": "ivy"}), {"name": "jack"}))
    assert body["name"] == "Ivy"


def test_unparseable_body_age_string_does_not_fall_back():
    body = run(post(json.dumps({"age": "abc"}), {"age": "25"}))
    assert body["age"] == NOT_PROVIDED


def test_numeric_zero_age_does_not_fall_back():
    body = run(post(json.dumps({"age": 0}), {"age": "25"}))
    assert body["age"] == 0


def test_body_age_string_is_parsed():
    assert run(post(json.dumps({"age": " 42 "})))["age"] == 42


def test_non_number_age_types_fall_back():
    assert run(post(json.dumps({"age": True}), {"age": "40"}))["age"] == 40
    assert run(post(json.dumps({"age": None}), {"age": "41"}))["age"] == 41
    assert run(post(json.dumps({"age": [1]})))["age"] == NOT_PROVIDED


def test_fractional_or_huge_age_falls_back(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        assert run(post(json.dumps({"age": 29.5}), {"age": "30"}))["age"] == 30
        assert run(post(json.dumps({"age": 2 ** 40})))["age"] == NOT_PROVIDED
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 2


def test_query_edge_cases():
    body = run(get({"name": ["kim", "LEE"], "age": ""}))
    assert body["name"] == "Kim,lee"
    assert body["age"] == NOT_PROVIDED


def test_bytes_body_and_lowercase_method():
    event = post(json.dumps({"name": "ÉMILE"}).encode("utf-8"))
    event["method"] = "post"
    assert run(event)["name"] == "Émile"


def test_invalid_utf8_body_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post(b"\xff\xfe{", {"name": "lou"}))
    assert body["name"] == "Lou"
    assert caplog.records


def test_extract_fields_age_kinds():
    assert extract_fields(get()).age.kind is AgeKind.ABSENT
    assert extract_fields(get({"age": "x"})).age == AgeInput.text("x")
    assert extract_fields(post('{"age": 7}')).age == AgeInput.integer(7)


def test_deeply_nested_body_is_logged_not_raised(caplog):
    depth = 100000
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post("[" * depth + "]" * depth, {"name": "carol"}))
    assert body == {"name": "Carol", "email": NOT_PROVIDED, "age": NOT_PROVIDED}
    assert any("Failed to parse JSON body" in r.getMessage() for r in caplog.records)


def test_non_json_constants_reject_the_body(caplog):
    for constant in ("NaN", "Infinity", "-Infinity"):
        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="loro.handler"):
            body = run(post('{"name": "bodyname", "age": %s}' % constant, {"name": "q"}))
        assert body["name"] == "Q"
        assert body["age"] == NOT_PROVIDED
        assert any("Failed to parse JSON body" in r.getMessage() for r in caplog.records)


def test_very_long_integer_age_drops_only_age(caplog):
    with caplog.at_level(logging.WARNING, logger="loro.handler"):
        body = run(post('{"name": "alice", "email": "A@B.C", "age": %s}' % ("9" * 5000), {"age": "12"}))
    assert body == {"name": "Alice", "email": "a@b.c", "age": 12}
    assert any("Failed to read age" in r.getMessage() for r in caplog.records)
    assert run(post('{"age": -%s}' % ("1" * 20)))["age"] == NOT_PROVIDED
    assert run(post('{"age": -2147483648}'))["age"] == -2147483648


def test_query_names_ignore_case():
    assert run(get({"Name": "bob", "EMAIL": "B@X.COM", "Age": "31"})) == {"name": "Bob", "email": "b@x.com", "age": 31}
    # names differing only in case are merged like repeated parameters
    assert run(get({"name": "ann", "NAME": "BO"}))["name"] == "Ann,bo"


def test_name_uses_titlecase_not_uppercase():
    assert format_name("ǆemal") == "ǅemal"
    assert format_name("ßtefan") == "Sstefan"
