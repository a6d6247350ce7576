import pytest

from fakes import fresh_progress
from intent import TALK_TARGET, contains_phrase, resolve
from models import Intent


@pytest.fixture
def graph(records):
    return records.location_graph


def test_object_in_current_location_resolves_to_inspect(graph):
    assert resolve("check the desk!", graph, fresh_progress()) == Intent("inspect", "desk")


def test_synonym_keyword_resolves(graph):
    assert resolve("Look under the CARPET", graph, fresh_progress()) == Intent("inspect", "rug")


def test_turkish_keyword_resolves(graph):
    assert resolve("masa ne durumda?", graph, fresh_progress()) == Intent("inspect", "desk")


def test_keywords_match_whole_words_only(graph):
    assert resolve("the deskside lamp is on", graph, fresh_progress()) == Intent("chat", None)


def test_objects_of_other_locations_are_not_inspectable(graph):
    # the gate lives in the garden
    assert resolve("check the gate", graph, fresh_progress()).action != "inspect"


def test_move_needs_a_cue(graph):
    assert resolve("let's go to the garden", graph, fresh_progress()) == Intent("move", "garden")
    assert resolve("the garden must be muddy", graph, fresh_progress()) == Intent("chat", None)


def test_move_resolves_even_to_unknown_locations(graph):
    # whether the move is allowed is decided by the transition engine
    assert resolve("go to the kitchen", graph, fresh_progress()) == Intent("move", "kitchen")


def test_object_here_beats_move(graph):
    assert resolve("go to the window", graph, fresh_progress()) == Intent("inspect", "window")


def test_talk_cue(graph):
    assert resolve("let me talk to Ann", graph, fresh_progress()) == Intent("talk", TALK_TARGET)


def test_plain_chat(graph):
    assert resolve("what a night", graph, fresh_progress()) == Intent("chat", None)


def test_resolution_follows_current_location(graph):
    in_garden = fresh_progress(current_location="garden", known_locations=["study", "garden"])
    assert resolve("check the gate", graph, in_garden) == Intent("inspect", "gate")
    assert resolve("check the desk", graph, in_garden).action == "chat"


@pytest.mark.parametrize("message,phrase,expected", [
    ("Check the DESK", "desk", True),
    ("go to the garden", "go to", True),
    ("desks everywhere", "desk", False),
    ("anything", "   ", False),
])
def test_contains_phrase(message, phrase, expected):
    assert contains_phrase(message, phrase) is expected
