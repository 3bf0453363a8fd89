"""Tests for directive tag parsing — ACTION, REMEMBER, GOAL, DONE."""

from assistant_relay.directives import extract_actions, extract_intents, strip_directives


class TestExtractActions:
    def test_single_email_action(self):
        parsed = extract_actions(
            "Sure! [ACTION: send_email | TO: alice@x.com | SUBJECT: Hi | BODY: Hello] Done."
        )
        assert len(parsed.actions) == 1
        action = parsed.actions[0]
        assert action.type == "send_email"
        assert action.fields == {"to": "alice@x.com", "subject": "Hi", "body": "Hello"}
        assert parsed.cleaned == "Sure! Done."

    def test_type_and_keys_are_lowercased(self):
        parsed = extract_actions("[action: Create_Task | TITLE: Buy milk | Due: Friday]")
        assert parsed.actions[0].type == "create_task"
        assert parsed.actions[0].fields == {"title": "Buy milk", "due": "Friday"}

    def test_action_without_fields(self):
        parsed = extract_actions("Ok [ACTION: ping]")
        assert parsed.actions[0].type == "ping"
        assert parsed.actions[0].fields == {}
        assert parsed.cleaned == "Ok"

    def test_multiple_actions_in_order(self):
        parsed = extract_actions("[ACTION: a | K: 1] and [ACTION: b | K: 2]")
        assert [a.type for a in parsed.actions] == ["a", "b"]
        assert parsed.cleaned == "and"

    def test_value_keeps_colons_after_first(self):
        parsed = extract_actions("[ACTION: update_calendar | EVENT: Standup | TIME: 10:30]")
        assert parsed.actions[0].fields["time"] == "10:30"

    def test_segment_without_colon_is_ignored(self):
        parsed = extract_actions("[ACTION: custom | junk | KEY: v]")
        assert parsed.actions[0].fields == {"key": "v"}

    def test_tag_spanning_lines_is_not_matched(self):
        text = "[ACTION: send\nemail | TO: a]"
        parsed = extract_actions(text)
        assert parsed.actions == []
        assert parsed.cleaned == text

    def test_no_tags_returns_text_unchanged(self):
        parsed = extract_actions("  plain reply  ")
        assert parsed.actions == []
        assert parsed.cleaned == "plain reply"

    def test_cleaning_is_idempotent(self):
        once = extract_actions("Hi [ACTION: x | A: b] there").cleaned
        assert extract_actions(once).cleaned == once


class TestExtractIntents:
    def test_mixed_tags(self):
        parsed = extract_intents(
            "Noted. [REMEMBER: likes tea] [GOAL: ship v2 | DEADLINE: March] [DONE: taxes]"
        )
        kinds = [(i.kind, i.content, i.deadline) for i in parsed.intents]
        assert kinds == [
            ("remember", "likes tea", None),
            ("goal", "ship v2", "March"),
            ("done", "taxes", None),
        ]
        assert parsed.cleaned == "Noted."

    def test_grouped_by_kind(self):
        parsed = extract_intents("[DONE: a] [REMEMBER: b] [GOAL: c] [REMEMBER: d]")
        assert [i.kind for i in parsed.intents] == ["remember", "remember", "goal", "done"]
        assert [i.content for i in parsed.intents] == ["b", "d", "c", "a"]

    def test_goal_without_deadline(self):
        parsed = extract_intents("[GOAL: run a marathon]")
        assert parsed.intents[0].deadline is None
        assert parsed.intents[0].content == "run a marathon"

    def test_case_insensitive_keywords(self):
        parsed = extract_intents("[remember: x] [Goal: y | deadline: z]")
        assert [(i.kind, i.content) for i in parsed.intents] == [("remember", "x"), ("goal", "y")]
        assert parsed.intents[1].deadline == "z"

    def test_action_tags_left_alone(self):
        parsed = extract_intents("[ACTION: ping] [REMEMBER: x]")
        assert parsed.cleaned == "[ACTION: ping]"


class TestStripDirectives:
    def test_removes_everything(self):
        text = "Hello [ACTION: ping] [REMEMBER: x] [GOAL: y] [DONE: z] world"
        assert strip_directives(text) == "Hello world"

    def test_unknown_bracket_text_survives(self):
        assert strip_directives("see [1] and [NOTE: x]") == "see [1] and [NOTE: x]"
