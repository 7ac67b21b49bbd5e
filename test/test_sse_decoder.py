# test/test_sse_decoder.py - incremental event-stream decoding
import json

from services.chat_relay import SSELineDecoder, Fragment, Done


def data_line(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n"


def texts(events):
    return [e.text for e in events if isinstance(e, Fragment)]


def test_fragments_in_order():
    decoder = SSELineDecoder()
    events = decoder.feed(data_line("Hel") + data_line("lo"))
    assert texts(events) == ["Hel", "lo"]


def test_line_split_across_chunks():
    decoder = SSELineDecoder()
    line = data_line("split")
    assert decoder.feed(line[:12]) == []
    assert texts(decoder.feed(line[12:])) == ["split"]


def test_crlf_comments_and_blank_lines():
    decoder = SSELineDecoder()
    stream = ": keep-alive\r\n\r\nevent: message\r\n" + data_line("ok").replace("\n", "\r\n")
    assert texts(decoder.feed(stream)) == ["ok"]


def test_done_stops_decoding():
    decoder = SSELineDecoder()
    events = decoder.feed(data_line("a") + "data: [DONE]\n" + data_line("ignored"))
    assert texts(events) == ["a"]
    assert isinstance(events[-1], Done)
    assert decoder.done
    assert decoder.feed(data_line("late")) == []


def test_empty_and_roleless_deltas_are_skipped():
    decoder = SSELineDecoder()
    role_only = "data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}) + "\n"
    events = decoder.feed(role_only + data_line("") + data_line("x"))
    assert texts(events) == ["x"]


def test_unparseable_line_waits_for_more_text():
    decoder = SSELineDecoder()
    assert decoder.feed('data: {"choices": [\n') == []
    # Joined with the next line, the JSON completes
    assert texts(decoder.feed('{"delta": {"content": "joined"}}]}\n')) == ["joined"]
    assert texts(decoder.feed(data_line("next"))) == ["next"]


def test_unparseable_line_is_dropped_once_stream_moves_on():
    decoder = SSELineDecoder()
    assert decoder.feed("data: {not json\n") == []
    events = decoder.feed(data_line("after") + data_line("more"))
    assert texts(events) == ["after", "more"]


def test_flush_parses_complete_leftovers_and_ignores_partials():
    decoder = SSELineDecoder()
    decoder.feed('data: {"choices": [{"delta": {"content": "tail"}}]}')
    assert texts(decoder.flush()) == ["tail"]

    partial = SSELineDecoder()
    partial.feed('data: {"choices": [{"delta"')
    assert partial.flush() == []
