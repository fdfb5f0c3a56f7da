"""StepGraph tests — transitions of the shipped funnel and load-time validation."""

import pytest
from pydantic import ValidationError

from helpers.funnel import NOW, days_ago, minimal_funnel
from lead_funnel.errors import FunnelConfigError, InvalidTransition
from lead_funnel.graph import StepGraph
from lead_funnel.models.directive import Disqualify, GoTo, ProceedToContact
from lead_funnel.models.funnel import FunnelDefinition


def _graph(**overrides) -> StepGraph:
    return StepGraph(FunnelDefinition.model_validate(minimal_funnel(**overrides)))


# =====================================================================
# Transitions (commercial_mva)
# =====================================================================


class TestTransitions:

    @pytest.mark.parametrize("step,key,value,expected", [
        ("vehicle_type", "vehicleType", "semi_truck", GoTo(step="fault")),
        ("vehicle_type", "vehicleType", "unsure", GoTo(step="vehicle_confirm")),
        ("vehicle_confirm", "vehicleConfirm", "yes", GoTo(step="fault")),
        ("vehicle_confirm", "vehicleConfirm", "no", Disqualify()),
        ("fault", "fault", "me", Disqualify()),
        ("fault", "fault", "unsure", GoTo(step="accident_date")),
        ("on_the_clock", "onTheClock", "no", GoTo(step="work_use_confirm")),
        ("on_the_clock", "onTheClock", "unsure", GoTo(step="medical_7_days")),
        ("work_use_confirm", "workUseConfirm", "no", Disqualify()),
        ("work_use_confirm", "workUseConfirm", "unsure", GoTo(step="medical_7_days")),
        ("medical_7_days", "medicalWithin7Days", "no", GoTo(step="medical_14_days")),
        ("medical_14_days", "medicalWithin14Days", "no", Disqualify()),
        ("medical_14_days", "medicalWithin14Days", "yes", GoTo(step="police_report")),
        ("police_report", "policeReport", "yes", GoTo(step="police_report_copy")),
        ("police_report", "policeReport", "unsure", ProceedToContact()),
        ("police_report_copy", "policeReportCopy", "no", ProceedToContact()),
    ])
    def test_edges(self, graph, step, key, value, expected):
        assert graph.next_step(step, key, value, now=NOW) == expected

    def test_date_within_window(self, graph):
        d = graph.next_step("accident_date", "accidentDate", days_ago(730), now=NOW)
        assert d == GoTo(step="on_the_clock"), "730 days is still inside the window"

    def test_date_too_old(self, graph):
        d = graph.next_step("accident_date", "accidentDate", days_ago(731), now=NOW)
        assert d == Disqualify()

    def test_date_today_is_valid(self, graph):
        d = graph.next_step("accident_date", "accidentDate", days_ago(0), now=NOW)
        assert d == GoTo(step="on_the_clock")

    def test_resolve_target(self, graph):
        assert graph.resolve_target(GoTo(step="fault")) == "fault"
        assert graph.resolve_target(ProceedToContact()) == "contact"
        assert graph.resolve_target(Disqualify()) is None


class TestInvalidTransitions:
    """Anything off the declared edges is a contract violation."""

    def test_unknown_value(self, graph):
        with pytest.raises(InvalidTransition, match="not accepted") as exc:
            graph.next_step("vehicle_type", "vehicleType", "spaceship", now=NOW)
        assert exc.value.step_id == "vehicle_type"

    def test_wrong_question_key(self, graph):
        with pytest.raises(InvalidTransition, match="expects an answer for 'vehicleType'"):
            graph.next_step("vehicle_type", "fault", "me", now=NOW)

    def test_unknown_step(self, graph):
        with pytest.raises(InvalidTransition, match="Unknown step"):
            graph.next_step("nowhere", "vehicleType", "bus", now=NOW)

    def test_future_date(self, graph):
        with pytest.raises(InvalidTransition, match="future"):
            graph.next_step("accident_date", "accidentDate", days_ago(-1), now=NOW)

    @pytest.mark.parametrize("value", [
        "", "yesterday", "10/19/2025", "2025-13-01", "20250101", "2025-W01-1", "2025-1-5",
    ])
    def test_malformed_date(self, graph, value):
        with pytest.raises(InvalidTransition, match="not an ISO date"):
            graph.next_step("accident_date", "accidentDate", value, now=NOW)

    def test_contact_step_is_not_answerable(self, graph):
        with pytest.raises(InvalidTransition, match="submit_contact"):
            graph.next_step("contact", "contact", "jane@example.com", now=NOW)


# =====================================================================
# Views
# =====================================================================


class TestViews:

    def test_choice_step_view(self, graph):
        view = graph.step_view("vehicle_type")
        assert view.kind == "choice"
        assert view.question_key == "vehicleType"
        assert "unsure" in [o.value for o in view.options]
        assert view.fields is None

    def test_date_step_view(self, graph):
        view = graph.step_view("accident_date")
        assert view.kind == "date"
        assert view.options is None

    def test_contact_step_view(self, graph):
        view = graph.step_view("contact")
        assert view.kind == "contact"
        assert view.fields == ["first_name", "last_name", "phone", "email"]

    def test_graph_dict(self, graph):
        g = graph.to_graph_dict()
        node_ids = {n["data"]["id"] for n in g["nodes"]}
        assert {"vehicle_type", "contact", "__disqualified", "__qualified"} <= node_ids
        for edge in g["edges"]:
            assert edge["data"]["source"] in node_ids
            assert edge["data"]["target"] in node_ids
        date_edges = [e["data"] for e in g["edges"] if e["data"]["source"] == "accident_date"]
        assert {"target": "__disqualified", "source": "accident_date", "label": "CLAIM_TOO_OLD"} in date_edges

    def test_every_step_reachable(self, graph):
        assert graph.first_step_id == "vehicle_type"
        assert graph.contact_step_id == "contact"
        assert len(graph.steps) == 11


# =====================================================================
# Load-time validation
# =====================================================================


class TestValidation:

    def test_minimal_funnel_is_valid(self):
        g = _graph()
        assert g.contact_step_id == "contact"

    def test_missing_contact_step(self):
        steps = minimal_funnel()["steps"][:1]
        steps[0]["options"][0]["then"] = {"directive": "disqualify"}
        rules = minimal_funnel()["disqualification_rules"] + [
            {"kind": "answer_equals", "reason": "NOT_WORK_USE", "question_key": "q1", "value": "yes"},
        ]
        with pytest.raises(FunnelConfigError, match="exactly one contact step"):
            _graph(steps=steps, disqualification_rules=rules)

    def test_two_contact_steps(self):
        steps = minimal_funnel()["steps"] + [
            {"id": "contact2", "kind": "contact", "question": "Again?"},
        ]
        with pytest.raises(FunnelConfigError, match="exactly one contact step"):
            _graph(steps=steps)

    def test_unknown_first_step(self):
        with pytest.raises(FunnelConfigError, match="first_step"):
            _graph(first_step="q0")

    def test_dangling_goto(self):
        steps = minimal_funnel()["steps"]
        steps[0]["options"][0]["then"] = {"directive": "goto", "step": "q2"}
        with pytest.raises(FunnelConfigError, match="unknown step 'q2'"):
            _graph(steps=steps)

    def test_unreachable_step(self):
        steps = minimal_funnel()["steps"] + [{
            "id": "orphan",
            "kind": "choice",
            "question_key": "orphan",
            "question": "Anyone?",
            "options": [{"value": "x", "label": "X", "then": {"directive": "contact"}}],
        }]
        with pytest.raises(FunnelConfigError, match="unreachable"):
            _graph(steps=steps)

    def test_disqualify_edge_without_rule(self):
        with pytest.raises(FunnelConfigError, match="no matching answer_equals rule"):
            _graph(disqualification_rules=[])

    def test_rule_on_proceeding_edge(self):
        rules = minimal_funnel()["disqualification_rules"] + [
            {"kind": "answer_equals", "reason": "NOT_WORK_USE", "question_key": "q1", "value": "yes"},
        ]
        with pytest.raises(FunnelConfigError, match="does not match a disqualify edge"):
            _graph(disqualification_rules=rules)

    def test_rule_on_unknown_question(self):
        rules = minimal_funnel()["disqualification_rules"] + [
            {"kind": "answer_equals", "reason": "NOT_WORK_USE", "question_key": "q9", "value": "no"},
        ]
        with pytest.raises(FunnelConfigError, match="does not match a disqualify edge"):
            _graph(disqualification_rules=rules)

    def test_date_rule_without_date_step(self):
        rules = minimal_funnel()["disqualification_rules"] + [
            {"kind": "date_older_than", "reason": "CLAIM_TOO_OLD", "question_key": "q1", "days": 730},
        ]
        with pytest.raises(FunnelConfigError, match="does not match a date step"):
            _graph(disqualification_rules=rules)

    def test_date_step_without_rule(self):
        steps = minimal_funnel()["steps"]
        steps[0]["options"][0]["then"] = {"directive": "goto", "step": "when"}
        steps.insert(1, {
            "id": "when",
            "kind": "date",
            "question_key": "when",
            "question": "When?",
            "then": {"directive": "contact"},
        })
        with pytest.raises(FunnelConfigError, match="no date_older_than rule"):
            _graph(steps=steps)

    def test_duplicate_step_ids(self):
        steps = minimal_funnel()["steps"]
        steps.append(dict(steps[0]))
        with pytest.raises(ValidationError, match="duplicate step ids"):
            FunnelDefinition.model_validate(minimal_funnel(steps=steps))

    def test_duplicate_option_values(self):
        steps = minimal_funnel()["steps"]
        steps[0]["options"].append({"value": "yes", "label": "Yes!", "then": {"directive": "contact"}})
        with pytest.raises(ValidationError, match="duplicate option values"):
            FunnelDefinition.model_validate(minimal_funnel(steps=steps))

    def test_unknown_reason(self):
        rules = [{"kind": "answer_equals", "reason": "BAD_VIBES", "question_key": "q1", "value": "no"}]
        with pytest.raises(ValidationError):
            FunnelDefinition.model_validate(minimal_funnel(disqualification_rules=rules))
