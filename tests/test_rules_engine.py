"""
Tests for the rule engine.
"""

import json

import pytest

from threat_engine.models import MessageContext
from threat_engine.rules import (
    ActionKind,
    Condition,
    ConditionKind,
    ConditionValue,
    Operator,
    PredicateRegistry,
    Rule,
    RuleEngine,
    ValueKind,
    resolve_field,
)


@pytest.fixture
def context():
    return MessageContext(
        message_id="<m1@example.com>",
        from_address="Billing <billing@paypal-secure.tk>",
        to="user@example.com",
        subject="Invoice overdue",
        body="Please pay the attached invoice today",
        headers={
            "x-mailer": ["MassMailer 2.0"],
            "received": ["from relay-1", "from relay-2"],
        },
        links=["http://paypal-secure.tk/pay", "http://example.com/help"],
        scores={"spam_score": 0.95, "phishing_score": 70.0},
        tags=["finance"],
    )


def names(matches):
    return [m.name for m in matches]


class TestOrdering:

    def test_matches_in_descending_priority(self, context):
        engine = RuleEngine()
        engine.add_rule(RuleEngine.create_rule("low", priority=10).when("subject", "contains", "invoice").build())
        engine.add_rule(RuleEngine.create_rule("high", priority=90).when("subject", "contains", "overdue").build())

        assert names(engine.evaluate(context)) == ["high", "low"]

    def test_equal_priority_keeps_insertion_order(self, context):
        engine = RuleEngine()
        for name in ("first", "second", "third"):
            engine.add_rule(RuleEngine.create_rule(name).when("subject", "contains", "invoice").build())

        assert names(engine.evaluate(context)) == ["first", "second", "third"]

    def test_disabled_rules_are_skipped(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("off").when("subject", "contains", "invoice").disabled().build(),
        ])
        assert engine.evaluate(context) == []

    def test_remove_rule(self, context):
        engine = RuleEngine([RuleEngine.create_rule("r").when("subject", "contains", "invoice").build()])

        assert engine.remove_rule("r") is True
        assert engine.remove_rule("r") is False
        assert engine.get_rules() == []

    def test_rule_without_conditions_always_matches(self, context):
        engine = RuleEngine([RuleEngine.create_rule("always").add_tag("seen").build()])
        matches = engine.evaluate(context)

        assert names(matches) == ["always"]
        assert matches[0].reason == "always"


class TestFieldConditions:

    @pytest.mark.parametrize("field, operator, value", [
        ("subject", "contains", "INVOICE"),
        ("subject", "starts_with", "invoice"),
        ("subject", "startsWith", "invoice"),
        ("from_address", "ends_with", "paypal-secure.tk>"),
        ("to", "equals", "USER@example.com"),
        ("subject", "contains", ["lottery", "overdue"]),
        ("scores.spam_score", "gt", 0.9),
        ("scores.spam_score", "equals", 0.95),
        ("headers.x-mailer", "contains", "massmailer"),
        ("x-mailer", "contains", "massmailer"),
        ("links", "contains", "paypal-secure"),
        ("links.1", "ends_with", "/help"),
        ("tags", "equals", "finance"),
    ])
    def test_matching_conditions(self, context, field, operator, value):
        engine = RuleEngine([RuleEngine.create_rule("r").when(field, operator, value).build()])
        assert names(engine.evaluate(context)) == ["r"]

    def test_negate(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("not-newsletter").when("subject", "contains", "newsletter", negate=True).build(),
            RuleEngine.create_rule("not-invoice").when("subject", "contains", "invoice", negate=True).build(),
        ])
        assert names(engine.evaluate(context)) == ["not-newsletter"]

    def test_missing_field_is_false_and_negatable(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("present").when("x-spam-flag", "equals", "yes").build(),
            RuleEngine.create_rule("absent").when("x-spam-flag", "equals", "yes", negate=True).build(),
        ])
        assert names(engine.evaluate(context)) == ["absent"]

    def test_all_conditions_must_hold(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("both")
            .when("subject", "contains", "invoice")
            .when("from_address", "contains", "example.org")
            .build(),
        ])
        assert engine.evaluate(context) == []

    def test_from_field_is_the_sender_address(self):
        context = MessageContext(from_address="boss@evil.example")
        engine = RuleEngine([RuleEngine.create_rule("r").when("from", "contains", "evil.example").build()])

        assert names(engine.evaluate(context)) == ["r"]
        assert resolve_field(context, "from") == "boss@evil.example"

    def test_from_field_ignores_display_name_header(self):
        context = MessageContext(
            from_address="billing@paypal-secure.tk",
            headers={"from": ["PayPal Billing <billing@paypal-secure.tk>"]},
        )
        engine = RuleEngine([RuleEngine.create_rule("r").when("from", "starts_with", "billing@").build()])

        assert names(engine.evaluate(context)) == ["r"]

    def test_unknown_operator_fails_closed(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("bad").when("subject", "resembles", "invoice").build(),
            RuleEngine.create_rule("bad-negated").when("subject", "resembles", "invoice", negate=True).build(),
        ])
        assert engine.evaluate(context) == []

    def test_unknown_condition_kind_fails_closed(self, context):
        rule = Rule("bad", conditions=[Condition("magic", "subject", "contains", "invoice", negate=True)])
        assert RuleEngine([rule]).evaluate(context) == []

    def test_numeric_operator_on_text_is_false(self, context):
        engine = RuleEngine([RuleEngine.create_rule("r").when("subject", "gt", 5).build()])
        assert engine.evaluate(context) == []


class TestPatternAndScore:

    def test_pattern(self, context):
        engine = RuleEngine([RuleEngine.create_rule("r").matches("body", r"pay\s+the").build()])
        assert names(engine.evaluate(context)) == ["r"]

    def test_invalid_pattern_never_matches(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("broken").matches("body", "pay(").build(),
            RuleEngine.create_rule("broken-negated").matches("body", "pay(", negate=True).build(),
        ])
        assert engine.evaluate(context) == []

    def test_score_conditions(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("spammy").score("spam_score", ">=", 0.9).build(),
            RuleEngine.create_rule("phishy").score("phishing_score", "lt", 50).build(),
            RuleEngine.create_rule("unknown-score").score("header_score", "lt", 50).build(),
        ])
        assert names(engine.evaluate(context)) == ["spammy"]

    def test_score_condition_needs_number(self, context):
        engine = RuleEngine([RuleEngine.create_rule("r").score("spam_score", "gt", "high").build()])
        assert engine.evaluate(context) == []


class TestCustomPredicates:

    def test_builtin_predicates(self, context):
        context.metadata['attachment_count'] = 1
        engine = RuleEngine([
            RuleEngine.create_rule("attachments").custom("has_attachments").build(),
            RuleEngine.create_rule("reply").custom("is_reply").build(),
            RuleEngine.create_rule("listed").custom("sender_in_list", ["paypal-secure.tk"]).build(),
            RuleEngine.create_rule("tagged").custom("has_tag", "finance").build(),
        ])
        assert names(engine.evaluate(context)) == ["attachments", "listed", "tagged"]

    def test_registered_callable(self, context):
        engine = RuleEngine([RuleEngine.create_rule("many-links").custom("link_count_over", 1).build()])
        engine.register_predicate("link_count_over", lambda ctx, limit: len(ctx.links) > limit)

        assert names(engine.evaluate(context)) == ["many-links"]

    def test_missing_predicate_fails_closed(self, context):
        engine = RuleEngine([RuleEngine.create_rule("r").custom("nope", negate=True).build()])
        assert engine.evaluate(context) == []

    def test_raising_predicate_fails_closed(self, context):
        def explode(ctx, argument):
            raise RuntimeError("boom")

        engine = RuleEngine([RuleEngine.create_rule("r").custom("explode", negate=True).build()])
        engine.register_predicate("explode", explode)

        assert engine.evaluate(context) == []

    def test_first_failing_condition_stops_evaluation(self, context):
        calls = []

        def record(ctx, argument):
            calls.append(argument)
            return True

        engine = RuleEngine([
            RuleEngine.create_rule("r")
            .when("subject", "contains", "newsletter")
            .custom("record", "second")
            .build(),
        ])
        engine.register_predicate("record", record)

        assert engine.evaluate(context) == []
        assert calls == []

    def test_conditions_after_a_passing_one_run(self, context):
        calls = []

        def record(ctx, argument):
            calls.append(argument)
            return True

        engine = RuleEngine([
            RuleEngine.create_rule("r")
            .when("subject", "contains", "invoice")
            .custom("record", "second")
            .build(),
        ])
        engine.register_predicate("record", record)

        assert names(engine.evaluate(context)) == ["r"]
        assert calls == ["second"]

    def test_registry_rejects_non_callables(self):
        with pytest.raises(TypeError):
            PredicateRegistry().register("bad", 42)

    def test_registry_defaults(self):
        assert "is_forwarded" in PredicateRegistry()
        assert PredicateRegistry(defaults=False).names() == []

    def test_registry_unregister(self):
        registry = PredicateRegistry()
        registry.unregister("is_reply")
        registry.unregister("never_registered")

        assert "is_reply" not in registry
        assert "is_forwarded" in registry


class TestMatchesAndSerialization:

    def test_match_carries_actions_and_reason(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("invoice", priority=70)
            .when("subject", "contains", "invoice")
            .move_to_folder("Finance")
            .set_flag("important")
            .adjust_score(-10)
            .build(),
        ])
        match = engine.evaluate(context)[0]

        assert [a.kind for a in match.actions] == [ActionKind.FOLDER, ActionKind.FLAG, ActionKind.SCORE]
        assert match.reason == "field:subject contains invoice"
        assert match.to_dict()['priority'] == 70

    def test_export_import(self, context):
        engine = RuleEngine([
            RuleEngine.create_rule("a", priority=5).when("subject", "endsWith", "overdue").quarantine().build(),
            RuleEngine.create_rule("b", priority=50).score("spam_score", "gt", 0.5).add_tag("spam").build(),
        ])
        exported = engine.export_rules()

        copy = RuleEngine()
        assert copy.import_rules(json.dumps(exported)) == 2
        assert copy.export_rules() == exported
        assert names(copy.evaluate(context)) == ["b", "a"]

    def test_import_rejects_unnamed_rule(self):
        engine = RuleEngine()
        with pytest.raises(ValueError):
            engine.import_rules([{"conditions": []}])
        assert engine.get_rules() == []

    def test_load_yaml(self, context, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "rules:\n"
            "  - name: Quarantine overdue invoices\n"
            "    priority: 10\n"
            "    conditions:\n"
            "      - type: field\n"
            "        field: subject\n"
            "        operator: contains\n"
            "        value: overdue\n"
            "    actions:\n"
            "      - type: quarantine\n"
            "        value: true\n"
        )
        engine = RuleEngine()

        assert engine.load_yaml(str(path)) == 1
        match = engine.evaluate(context)[0]
        assert match.actions[0].kind == ActionKind.QUARANTINE


class TestModels:

    def test_condition_value_shapes(self):
        assert ConditionValue.of("x").kind == ValueKind.STRING
        assert ConditionValue.of(3).kind == ValueKind.NUMBER
        assert ConditionValue.of(True).kind == ValueKind.BOOLEAN
        assert ConditionValue.of(["a", "b"]).kind == ValueKind.STRING_LIST
        assert ConditionValue.of(None) is None
        with pytest.raises(ValueError):
            ConditionValue.of({"a": 1})

    def test_condition_parses_names(self):
        condition = Condition.from_dict({"type": "pattern", "field": "subject", "operator": "matches", "value": "x"})

        assert condition.kind == ConditionKind.PATTERN
        assert condition.operator == Operator.MATCHES

    def test_operator_aliases(self):
        assert Operator.parse(">=") == Operator.GTE
        assert Operator.parse("endsWith") == Operator.ENDS_WITH
        assert Operator.parse("resembles") is None

    def test_resolve_field(self, context):
        assert resolve_field(context, "headers.received") == "from relay-1"
        assert resolve_field(context, "scores.spam_score") == 0.95
        assert resolve_field(context, "links.5") is None
        assert resolve_field(context, "header") is None
        assert resolve_field(context, "") is None
