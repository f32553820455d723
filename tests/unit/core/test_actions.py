"""
Unit tests for action variants and agent responses.
"""

import pytest

from fleetpilot.core.domain.actions import (
    ActionType,
    AgentResponse,
    Click,
    Complete,
    Fail,
    Navigate,
    Observe,
    Scroll,
    TypeText,
    Wait,
    action_from_dict,
)


class TestActionFromDict:
    def test_navigate(self):
        action = action_from_dict({"type": "navigate", "url": "https://example.com"})
        assert action == Navigate(url="https://example.com")

    def test_navigate_without_url_is_rejected(self):
        with pytest.raises(ValueError, match="url"):
            action_from_dict({"type": "navigate"})

    def test_click_with_coordinates(self):
        action = action_from_dict({"type": "click", "coordinates": {"x": 10, "y": 20.7}})
        assert action == Click(x=10, y=20)

    def test_click_with_selector_only(self):
        action = action_from_dict({"type": "click", "selector": "#login"})
        assert action == Click(selector="#login")

    def test_click_without_target_is_rejected(self):
        with pytest.raises(ValueError, match="coordinates or a selector"):
            action_from_dict({"type": "click"})

    def test_type_requires_text(self):
        with pytest.raises(ValueError):
            action_from_dict({"type": "type", "selector": "#q"})
        assert action_from_dict({"type": "type", "text": "hello"}) == TypeText(text="hello")

    def test_scroll_normalizes_direction(self):
        action = action_from_dict({"type": "scroll", "direction": "sideways", "amount": 500})
        assert action == Scroll(direction="down", amount=500)

    def test_wait_accepts_amount(self):
        assert action_from_dict({"type": "wait", "amount": 2500}) == Wait(duration_ms=2500)
        assert action_from_dict({"type": "wait"}) == Wait(duration_ms=1000)

    def test_screenshot_is_alias_for_observe(self):
        assert action_from_dict({"type": "screenshot"}) == Observe()
        assert action_from_dict({"type": "OBSERVE"}) == Observe()

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown action type"):
            action_from_dict({"type": "teleport"})

    def test_complete_keeps_generated_data(self):
        action = action_from_dict(
            {"type": "complete", "reason": "done", "generated_data": {"email": "a@b.c"}}
        )
        assert isinstance(action, Complete)
        assert action.generated_data == {"email": "a@b.c"}

    def test_fail_has_default_reason(self):
        assert action_from_dict({"type": "fail"}) == Fail(reason="Agent reported failure")


class TestWireFormat:
    def test_click_serializes_coordinates(self):
        assert Click(x=1, y=2, selector="#a").to_dict() == {
            "type": "click",
            "coordinates": {"x": 1, "y": 2},
            "selector": "#a",
        }

    def test_wait_uses_amount_key(self):
        assert Wait(duration_ms=300).to_dict() == {"type": "wait", "amount": 300}

    def test_every_variant_reports_its_type(self):
        variants = [
            Navigate(url="u"),
            Click(selector="s"),
            TypeText(text="t"),
            Scroll(),
            Wait(),
            Observe(),
            Complete(),
            Fail(),
        ]
        assert [v.to_dict()["type"] for v in variants] == [t.value for t in ActionType]


class TestAgentResponse:
    def test_from_dict_clamps_values(self):
        response = AgentResponse.from_dict(
            {"action": {"type": "observe"}, "confidence": 7, "goal_progress": -20}
        )
        assert response.confidence == 1.0
        assert response.goal_progress == 0

    def test_string_action_is_accepted(self):
        response = AgentResponse.from_dict({"action": "observe", "reasoning": "look"})
        assert isinstance(response.action, Observe)
        assert response.reasoning == "look"

    def test_generated_data_merges_action_and_top_level(self):
        response = AgentResponse.from_dict(
            {
                "action": {"type": "complete", "generated_data": {"username": "bot1"}},
                "generated_data": {"password": "s3cret"},
                "goal_achieved": True,
            }
        )
        assert response.generated_data == {"username": "bot1", "password": "s3cret"}
        assert response.is_success

    def test_verification_criteria_imply_verification(self):
        response = AgentResponse.from_dict(
            {
                "action": {"type": "click", "selector": "#go"},
                "verification_criteria": [{"type": "url_contains", "value": "/done"}, "junk"],
            }
        )
        assert response.requires_verification is True
        assert response.verification_criteria == [{"type": "url_contains", "value": "/done"}]

    def test_fail_with_goal_achieved_is_not_a_failure(self):
        response = AgentResponse(action=Fail(reason="x"), goal_achieved=True)
        assert response.is_success
        assert not response.is_failure
