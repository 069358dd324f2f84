"""Tests for workflow condition matching and execution."""

import pytest

from wa_mailbox.domain.services.contact_service import ContactService
from wa_mailbox.domain.services.tag_service import TagService
from wa_mailbox.domain.services.workflow_service import (
    WorkflowService,
    conditions_match,
    validate_actions,
)
from wa_mailbox.persistence.models.workflow import Workflow
from wa_mailbox.persistence.repositories.tag_repository import TagRepository


def _workflow(trigger_type: str, conditions: dict | None = None) -> Workflow:
    return Workflow(name="w", trigger_type=trigger_type, trigger_conditions=conditions or {}, actions=[])


class TestConditionsMatch:
    def test_new_message_keyword_is_case_insensitive_substring(self):
        workflow = _workflow("new_message", {"keyword": "Refund"})
        assert conditions_match(workflow, {"message_body": "I want a REFUND now"}) is True
        assert conditions_match(workflow, {"message_body": "Thanks"}) is False

    def test_new_message_without_keyword_matches_everything(self):
        assert conditions_match(_workflow("new_message"), {"message_body": "anything"}) is True

    def test_stage_change(self):
        workflow = _workflow("stage_change", {"from_stage": "new", "to_stage": "qualified"})
        assert conditions_match(workflow, {"from_stage": "new", "to_stage": "qualified"}) is True
        assert conditions_match(workflow, {"from_stage": "contacted", "to_stage": "qualified"}) is False

    def test_tag_added_compares_as_strings(self):
        workflow = _workflow("tag_added", {"tag_id": "7"})
        assert conditions_match(workflow, {"tag_id": 7}) is True
        assert conditions_match(workflow, {"tag_id": 8}) is False

    def test_lead_score_threshold(self):
        workflow = _workflow("lead_score_change", {"min_score": 50})
        assert conditions_match(workflow, {"new_score": 50}) is True
        assert conditions_match(workflow, {"new_score": 49}) is False

    def test_time_based_never_fires_from_events(self):
        assert conditions_match(_workflow("time_based"), {}) is False


class TestValidateActions:
    def test_valid_actions_pass_through(self):
        actions = [{"type": "change_stage", "stage": "customer"}, {"type": "update_lead_score", "delta": -5}]
        assert validate_actions(actions) == actions

    @pytest.mark.parametrize(
        "actions",
        [
            "not-a-list",
            [{"type": "launch_rocket"}],
            [{"type": "send_message"}],
            [{"type": "create_note", "note": ""}],
        ],
    )
    def test_invalid_actions(self, actions):
        with pytest.raises(ValueError):
            validate_actions(actions)


@pytest.mark.asyncio
async def test_failing_action_stops_the_run(db_session, tenant):
    contact = await ContactService(db_session).create_contact(tenant.id, "923001111111")
    service = WorkflowService(db_session)
    workflow = await service.create_workflow(
        tenant.id,
        name="Broken",
        trigger_type="new_message",
        actions=[
            {"type": "update_lead_score", "delta": 10},
            {"type": "add_tag", "tag_id": 9999},
            {"type": "change_stage", "stage": "customer"},
        ],
    )

    execution = await service.execute(workflow, contact)

    assert execution.status == "failed"
    assert "9999" in execution.error_message
    assert [a["type"] for a in execution.actions_performed] == ["update_lead_score"]
    assert contact.lead_score == 10
    assert contact.stage == "new"


@pytest.mark.asyncio
async def test_send_message_without_credentials_fails(db_session, tenant):
    contact = await ContactService(db_session).create_contact(tenant.id, "923001111111")
    service = WorkflowService(db_session)
    workflow = await service.create_workflow(
        tenant.id, name="Greet", trigger_type="new_message", actions=[{"type": "send_message", "message": "Hi"}]
    )

    execution = await service.execute(workflow, contact)

    assert execution.status == "failed"
    assert "credentials" in execution.error_message


@pytest.mark.asyncio
async def test_tag_added_fires_but_actions_do_not_chain(db_session, tenant):
    tags = TagService(db_session)
    vip = await tags.create_tag(tenant.id, "VIP")
    priority = await tags.create_tag(tenant.id, "Priority")
    contact = await ContactService(db_session).create_contact(tenant.id, "923001111111")
    service = WorkflowService(db_session)
    first = await service.create_workflow(
        tenant.id,
        name="VIP gets priority",
        trigger_type="tag_added",
        trigger_conditions={"tag_id": vip.id},
        actions=[{"type": "add_tag", "tag_id": priority.id}],
    )
    second = await service.create_workflow(
        tenant.id,
        name="Priority note",
        trigger_type="tag_added",
        trigger_conditions={"tag_id": priority.id},
        actions=[{"type": "create_note", "note": "Priority customer"}],
    )

    await ContactService(db_session).add_tag(tenant.id, contact.id, vip.id)

    assert await TagRepository(db_session).contact_has_tag(contact.id, priority.id)
    assert first.execution_count == 1
    assert (second.execution_count or 0) == 0


@pytest.mark.asyncio
async def test_inactive_workflows_are_skipped(db_session, tenant):
    contact = await ContactService(db_session).create_contact(tenant.id, "923001111111")
    service = WorkflowService(db_session)
    await service.create_workflow(
        tenant.id,
        name="Off",
        trigger_type="new_message",
        actions=[{"type": "update_lead_score", "delta": 1}],
        is_active=False,
    )

    assert await service.trigger(tenant.id, "new_message", contact, {"message_body": "hi"}) == []
