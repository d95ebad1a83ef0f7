"""
Tests for core/lifecycle: the ProjectLifecycleService end to end.

Every test runs against its own SQLite database with in-process locks, a
mocked payment gateway and a recording notifier (see conftest.py).
"""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.orm.exc import StaleDataError

from webstability.core.errors import ErrorKind, InfrastructureError, Result
from webstability.core.interfaces import PaymentReport
from webstability.models.pydantic_models.project import ProjectIntake, ProjectModel


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_project_defaults(service):
    result = await service.create_project(
        ProjectIntake(business_name="  Cafe de Hoek ", package="professioneel")
    )
    assert result.ok
    project = result.value
    assert project.project_id.startswith("WS-")
    assert project.business_name == "Cafe de Hoek"
    assert project.package == "professional"
    assert project.phase == "onboarding"
    assert project.payment_status == "pending"
    assert project.revisions_used == 0
    assert project.changes_this_month == 0
    assert project.version == 1


@pytest.mark.asyncio
async def test_create_project_with_referral(service, project_factory):
    referrer = await project_factory(business_name="Garage Smit")
    code = (await service.get_or_create_referral_code(referrer.project_id)).value

    result = await service.create_project(
        ProjectIntake(business_name="Autopoets Pieters", referred_by=code.lower())
    )
    assert result.ok
    assert result.value.referred_by == code


@pytest.mark.asyncio
async def test_create_project_unknown_referral(service):
    result = await service.create_project(
        ProjectIntake(business_name="Autopoets Pieters", referred_by="REF-UNKNWN")
    )
    assert result.error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_get_unknown_project(service):
    result = await service.get_project("WS-NOPE00")
    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_list_projects_filters(service, project_factory):
    await project_factory(business_name="Een")
    live = await project_factory(business_name="Twee", phase="live", payment_status="paid")

    projects = await service.list_projects(phase="live")
    assert [p.project_id for p in projects] == [live.project_id]
    assert len(await service.list_projects()) == 2


@pytest.mark.asyncio
async def test_delete_project_removes_children(service, live_project):
    await service.submit_change_request(live_project.project_id, "Tekst aanpassen")

    result = await service.delete_project(live_project.project_id)
    assert result.ok
    assert (await service.get_project(live_project.project_id)).error.kind == ErrorKind.NOT_FOUND
    assert await service.list_change_requests(project_id=live_project.project_id) == []


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_phase_transition_notifies_client(service, project_factory, notifier):
    project = await project_factory()

    result = await service.request_phase_transition(project.project_id, "design", "developer")
    assert result.ok
    assert result.value.phase == "design"
    assert result.value.phase_history[-1]["to"] == "design"

    assert notifier.kinds() == ["phase_changed"]
    sent = notifier.sent[0]
    assert sent["recipient"] == "info@bakkerijdevries.nl"
    assert sent["payload"]["from_phase"] == "onboarding"
    assert sent["payload"]["to_phase"] == "design"


@pytest.mark.asyncio
async def test_rejected_transition_changes_nothing(service, project_factory, notifier):
    project = await project_factory(phase="payment")

    result = await service.request_phase_transition(project.project_id, "domain", "client")
    assert result.error.kind == ErrorKind.PAYMENT_REQUIRED

    stored = (await service.get_project(project.project_id)).value
    assert stored.phase == "payment"
    assert stored.version == project.version
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_transition_unknown_actor(service, project_factory):
    project = await project_factory()
    result = await service.request_phase_transition(project.project_id, "design", "robot")
    assert result.error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_check_phase_transition_is_read_only(service, project_factory):
    project = await project_factory(phase="feedback", revisions_used=2)

    check = (
        await service.check_phase_transition(project.project_id, "revisie", "client")
    ).value
    assert not check.allowed
    assert check.reason == ErrorKind.QUOTA_EXCEEDED

    check = (
        await service.check_phase_transition(project.project_id, "payment", "client")
    ).value
    assert check.allowed
    assert (await service.get_project(project.project_id)).value.phase == "feedback"


@pytest.mark.asyncio
async def test_revision_round_is_consumed(service, project_factory):
    project = await project_factory(phase="feedback", revisions_used=1)

    result = await service.request_phase_transition(project.project_id, "revisie", "client")
    assert result.ok
    assert result.value.revisions_used == 2


@pytest.mark.asyncio
async def test_unresolved_feedback_blocks_until_resolved(service, project_factory):
    project = await project_factory(phase="feedback")

    entry = (
        await service.submit_feedback(
            project.project_id,
            "design",
            [
                {"rating": "positive", "comment": "Mooi logo"},
                {"rating": "negative", "comment": "Menu is onduidelijk"},
            ],
        )
    ).value

    blocked = await service.request_phase_transition(project.project_id, "payment", "client")
    assert blocked.error.kind == ErrorKind.UNRESOLVED_FEEDBACK

    resolved = await service.resolve_feedback(project.project_id, entry.id, "Menu aangepast")
    assert resolved.ok
    assert resolved.value.status == "resolved"
    assert resolved.value.developer_response == "Menu aangepast"

    moved = await service.request_phase_transition(project.project_id, "payment", "client")
    assert moved.ok


@pytest.mark.asyncio
async def test_developer_message_counts_as_response(service, project_factory):
    project = await project_factory(phase="feedback")
    await service.submit_feedback(
        project.project_id, "design", [{"rating": "negative", "comment": "Te druk"}]
    )

    await service.post_message(project.project_id, "developer", "We passen het aan")

    moved = await service.request_phase_transition(project.project_id, "payment", "client")
    assert moved.ok


@pytest.mark.asyncio
async def test_domain_to_live_after_checklist(service, project_factory, notifier):
    project = await project_factory(
        phase="domain",
        payment_status="paid",
        prelive_checklist={"payment_received": True},
    )
    pid = project.project_id

    assert (
        await service.update_prelive_section(
            pid, "legal", {"has_privacy_policy": True, "has_terms_conditions": True}
        )
    ).ok
    assert (await service.update_prelive_section(pid, "email", {"email_preference": "existing"})).ok
    assert (
        await service.update_prelive_section(
            pid, "domain", {"has_domain": True, "wants_new_domain": True}
        )
    ).ok

    blocked = await service.request_phase_transition(pid, "live", "client")
    assert blocked.error.kind == ErrorKind.CHECKLIST_INCOMPLETE
    assert blocked.error.details["missing"] == ["final_approval_given"]

    assert (await service.update_prelive_section(pid, "approval", {})).ok
    evaluation = (await service.evaluate_checklist(pid)).value
    assert evaluation.complete

    result = await service.request_phase_transition(pid, "live", "client")
    assert result.ok
    assert result.value.phase == "live"
    assert result.value.live_date is not None
    assert notifier.sent[-1]["payload"]["to_phase"] == "live"


@pytest.mark.asyncio
async def test_update_prelive_section_validation(service, project_factory):
    project = await project_factory()

    unknown = await service.update_prelive_section(project.project_id, "hosting", {})
    assert unknown.error.kind == ErrorKind.INVALID_INPUT

    invalid = await service.update_prelive_section(
        project.project_id, "email", {"email_preference": "pigeon"}
    )
    assert invalid.error.kind == ErrorKind.INVALID_INPUT
    assert invalid.error.details["errors"]


# ---------------------------------------------------------------------------
# Change requests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_change_request_notifies_developer(service, live_project, notifier):
    result = await service.submit_change_request(
        live_project.project_id,
        "Nieuwe openingstijden op de contactpagina",
        category="text",
        priority="urgent",
        title="Openingstijden",
    )
    assert result.ok
    assert result.value.priority == "urgent"

    assert notifier.kinds() == ["change_request_submitted"]
    payload = notifier.sent[0]["payload"]
    assert payload["change_request_id"] == str(result.value.id)
    assert payload["business_name"] == "Bakkerij de Vries"

    project = (await service.get_project(live_project.project_id)).value
    assert project.changes_this_month == 1
    assert len(project.change_requests) == 1


@pytest.mark.asyncio
async def test_starter_quota_exhausted(service, project_factory, notifier):
    project = await project_factory(
        phase="live", payment_status="paid", changes_this_month=2
    )

    result = await service.submit_change_request(project.project_id, "Nog een wijziging")
    assert result.error.kind == ErrorKind.QUOTA_EXCEEDED
    assert notifier.sent == []
    assert (await service.change_request_stats(project.project_id)).total == 0


@pytest.mark.asyncio
async def test_unlimited_package_keeps_accepting(service, project_factory):
    project = await project_factory(
        package="business", phase="live", payment_status="paid", changes_this_month=40
    )
    result = await service.submit_change_request(project.project_id, "Wijziging 41")
    assert result.ok
    assert service.quota_usage(
        (await service.get_project(project.project_id)).value
    )["changes_remaining"] == "unlimited"


@pytest.mark.asyncio
async def test_concurrent_submissions_respect_quota(service, project_factory):
    project = await project_factory(
        phase="live", payment_status="paid", changes_this_month=0
    )

    results = await asyncio.gather(
        *[
            service.submit_change_request(project.project_id, f"Wijziging {i}")
            for i in range(5)
        ]
    )

    succeeded = [r for r in results if r.ok]
    rejected = [r for r in results if not r.ok]
    assert len(succeeded) == 2
    assert len(rejected) == 3
    assert all(r.error.kind == ErrorKind.QUOTA_EXCEEDED for r in rejected)

    stored = (await service.get_project(project.project_id)).value
    assert stored.changes_this_month == 2
    assert len(stored.change_requests) == 2


@pytest.mark.asyncio
async def test_change_request_before_live(service, project_factory):
    project = await project_factory(phase="design")
    result = await service.submit_change_request(project.project_id, "Kan dit al?")
    assert result.error.kind == ErrorKind.INVALID_TRANSITION


@pytest.mark.asyncio
async def test_stats_follow_status_changes(service, live_project, notifier):
    first = (await service.submit_change_request(live_project.project_id, "Foto 1")).value
    await service.submit_change_request(live_project.project_id, "Foto 2")

    stats = await service.change_request_stats(live_project.project_id)
    assert (stats.total, stats.pending, stats.in_progress, stats.completed) == (2, 2, 0, 0)

    await service.update_change_request_status(first.id, "in_progress")
    stats = await service.change_request_stats(live_project.project_id)
    assert (stats.pending, stats.in_progress) == (1, 1)

    await service.update_change_request_status(first.id, "completed", "Foto staat erop")
    stats = await service.change_request_stats()
    assert (stats.total, stats.pending, stats.in_progress, stats.completed) == (2, 1, 0, 1)
    assert notifier.kinds().count("change_request_completed") == 1


@pytest.mark.asyncio
async def test_completing_twice_keeps_completed_at(service, live_project, notifier):
    created = (await service.submit_change_request(live_project.project_id, "Banner")).value

    first = (await service.update_change_request_status(created.id, "completed")).value
    second = await service.update_change_request_status(created.id, "completed")

    assert second.ok
    assert second.value.completed_at == first.completed_at
    assert notifier.kinds().count("change_request_completed") == 1


@pytest.mark.asyncio
async def test_completed_request_cannot_reopen(service, live_project):
    created = (await service.submit_change_request(live_project.project_id, "Banner")).value
    await service.update_change_request_status(created.id, "completed")

    result = await service.update_change_request_status(created.id, "pending")
    assert result.error.kind == ErrorKind.INVALID_STATUS_TRANSITION


@pytest.mark.asyncio
async def test_update_unknown_change_request(service):
    missing = await service.update_change_request_status(uuid.uuid4(), "completed")
    assert missing.error.kind == ErrorKind.NOT_FOUND

    malformed = await service.update_change_request_status("not-a-uuid", "completed")
    assert malformed.error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_list_change_requests_filters(service, live_project):
    await service.submit_change_request(live_project.project_id, "Laag", priority="low")
    await service.submit_change_request(live_project.project_id, "Snel", priority="urgent")

    urgent = await service.list_change_requests(priority="urgent")
    assert [cr.description for cr in urgent] == ["Snel"]

    everything = await service.list_change_requests(project_id=live_project.project_id)
    assert [cr.description for cr in everything] == ["Snel", "Laag"]


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_payment_confirmation_is_idempotent(service, project_factory, notifier):
    project = await project_factory(phase="payment")

    first = await service.record_payment_confirmed(project.project_id, "29.00", "tr_abc")
    second = await service.record_payment_confirmed(project.project_id, "29.00", "tr_abc")

    assert first.ok and second.ok
    stored = second.value
    assert stored.payment_status == "paid"
    assert stored.payment_completed_at is not None
    assert stored.prelive_checklist["payment_received"] is True
    assert len(stored.payments) == 1
    assert notifier.kinds() == ["payment_confirmed"]


@pytest.mark.asyncio
async def test_second_payment_keeps_completed_at(service, project_factory, notifier):
    project = await project_factory(phase="live")

    first = (await service.record_payment_confirmed(project.project_id, 29, "tr_jan")).value
    second = (await service.record_payment_confirmed(project.project_id, 29, "tr_feb")).value

    assert second.payment_completed_at == first.payment_completed_at
    assert len(second.payments) == 2
    assert notifier.kinds() == ["payment_confirmed"]


@pytest.mark.asyncio
async def test_payment_reference_of_other_project(service, project_factory):
    one = await project_factory(business_name="Een")
    two = await project_factory(business_name="Twee")
    await service.record_payment_confirmed(one.project_id, "49.00", "tr_shared")

    result = await service.record_payment_confirmed(two.project_id, "49.00", "tr_shared")
    assert result.error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_payment_confirmation_input_validation(service, project_factory):
    project = await project_factory()
    assert (
        await service.record_payment_confirmed(project.project_id, "29", "")
    ).error.kind == ErrorKind.INVALID_INPUT
    assert (
        await service.record_payment_confirmed(project.project_id, "abc", "tr_x")
    ).error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_paid_unlocks_domain(service, project_factory):
    project = await project_factory(phase="payment")
    await service.record_payment_confirmed(project.project_id, "29.00", "tr_open")

    result = await service.request_phase_transition(project.project_id, "domain", "client")
    assert result.ok


@pytest.mark.asyncio
async def test_failed_payment_does_not_undo_paid(service, project_factory):
    project = await project_factory(payment_status="awaiting_payment")

    failed = await service.record_payment_failed(project.project_id, "tr_1")
    assert failed.value.payment_status == "failed"

    await service.record_payment_confirmed(project.project_id, "29.00", "tr_2")
    late_failure = await service.record_payment_failed(project.project_id, "tr_1")
    assert late_failure.value.payment_status == "paid"


@pytest.mark.asyncio
async def test_refund(service, project_factory):
    project = await project_factory(phase="payment")

    not_paid = await service.record_refund(project.project_id, "tr_1")
    assert not_paid.error.kind == ErrorKind.INVALID_TRANSITION

    await service.record_payment_confirmed(project.project_id, "29.00", "tr_1")
    refunded = await service.record_refund(project.project_id, "tr_1")
    assert refunded.value.payment_status == "refunded"
    assert refunded.value.prelive_checklist["payment_received"] is False

    blocked = await service.request_phase_transition(project.project_id, "domain", "client")
    assert blocked.error.kind == ErrorKind.PAYMENT_REQUIRED


@pytest.mark.asyncio
async def test_payment_link_uses_package_price(service, project_factory, payment_gateway):
    project = await project_factory(package="business", phase="payment")

    result = await service.request_payment_link(project.project_id)
    assert result.ok
    assert result.value.payment_url == "https://pay.example/checkout/tr_test"
    assert result.value.payment_status == "awaiting_payment"

    _, amount, description = payment_gateway.create_checkout.await_args.args
    assert amount == Decimal("79.00")
    assert project.project_id in description


@pytest.mark.asyncio
async def test_payment_link_amount_validation(service, project_factory, payment_gateway):
    project = await project_factory()

    result = await service.request_payment_link(project.project_id, amount="-5")
    assert result.error.kind == ErrorKind.INVALID_INPUT
    payment_gateway.create_checkout.assert_not_awaited()


@pytest.mark.asyncio
async def test_payment_link_keeps_paid_status(service, project_factory):
    project = await project_factory(payment_status="paid")
    result = await service.request_payment_link(project.project_id, amount="15.00")
    assert result.value.payment_status == "paid"


@pytest.mark.asyncio
async def test_webhook_paid(service, project_factory, payment_gateway, notifier):
    project = await project_factory(phase="payment", payment_status="awaiting_payment")
    payment_gateway.fetch_payment.return_value = PaymentReport(
        reference="tr_hook", status="paid", amount=Decimal("29.00"), project_id=project.project_id
    )

    result = await service.handle_payment_webhook("tr_hook")
    assert result.value.payment_status == "paid"
    assert notifier.kinds() == ["payment_confirmed"]

    # Mollie retries webhooks; the second delivery changes nothing
    again = await service.handle_payment_webhook("tr_hook")
    assert again.ok
    assert notifier.kinds() == ["payment_confirmed"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "canceled", "expired"])
async def test_webhook_failed(service, project_factory, payment_gateway, status):
    project = await project_factory(payment_status="awaiting_payment")
    payment_gateway.fetch_payment.return_value = PaymentReport(
        reference="tr_bad", status=status, amount=Decimal("29.00"), project_id=project.project_id
    )

    result = await service.handle_payment_webhook("tr_bad")
    assert result.value.payment_status == "failed"


@pytest.mark.asyncio
async def test_webhook_open_payment_changes_nothing(service, project_factory, payment_gateway):
    project = await project_factory(payment_status="awaiting_payment")
    payment_gateway.fetch_payment.return_value = PaymentReport(
        reference="tr_open", status="open", amount=Decimal("29.00"), project_id=project.project_id
    )

    result = await service.handle_payment_webhook("tr_open")
    assert result.value.payment_status == "awaiting_payment"


@pytest.mark.asyncio
async def test_webhook_unknown_payment(service, payment_gateway):
    payment_gateway.fetch_payment.return_value = None
    result = await service.handle_payment_webhook("tr_ghost")
    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_webhook_unlinked_payment(service, payment_gateway):
    payment_gateway.fetch_payment.return_value = PaymentReport(
        reference="tr_orphan", status="paid", amount=Decimal("29.00")
    )
    result = await service.handle_payment_webhook("tr_orphan")
    assert result.error.kind == ErrorKind.INVALID_INPUT


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_referral_code_is_stable(service, live_project, notifier):
    first = await service.get_or_create_referral_code(live_project.project_id)
    second = await service.get_or_create_referral_code(live_project.project_id)

    assert first.ok and second.ok
    assert first.value == second.value
    assert notifier.kinds() == ["referral_code_issued"]

    found = await service.lookup_referral_code(first.value)
    assert found.value.project_id == live_project.project_id


@pytest.mark.asyncio
async def test_concurrent_referral_requests_issue_one_code(service, live_project, notifier):
    results = await asyncio.gather(
        *[service.get_or_create_referral_code(live_project.project_id) for _ in range(6)]
    )

    assert all(r.ok for r in results)
    assert len({r.value for r in results}) == 1
    assert notifier.kinds() == ["referral_code_issued"]

    stored = (await service.get_project(live_project.project_id)).value
    assert stored.referral_code == results[0].value


@pytest.mark.asyncio
async def test_lookup_unknown_referral(service):
    result = await service.lookup_referral_code("REF-XXXXXX")
    assert result.error.kind == ErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_messages_and_read_marks(service, project_factory):
    project = await project_factory()
    await service.post_message(project.project_id, "client", "Wanneer is het design klaar?")
    await service.post_message(project.project_id, "client", "Nog een vraag")
    await service.post_message(project.project_id, "developer", "Vrijdag!")

    marked = await service.mark_messages_read(project.project_id, "developer")
    assert marked.value == 2

    stored = (await service.get_project(project.project_id)).value
    assert [m.read for m in stored.messages] == [True, True, False]
    assert stored.last_developer_response_at is not None

    assert (await service.mark_messages_read(project.project_id, "developer")).value == 0


@pytest.mark.asyncio
async def test_empty_message_rejected(service, project_factory):
    project = await project_factory()
    result = await service.post_message(project.project_id, "client", "   ")
    assert result.error.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_feedback_needs_items(service, project_factory):
    project = await project_factory(phase="feedback")
    result = await service.submit_feedback(project.project_id, "design", [])
    assert result.error.kind == ErrorKind.INVALID_INPUT


# ---------------------------------------------------------------------------
# Reads after writes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_read_results_stay_usable_after_session_closes(service, live_project):
    pid = live_project.project_id
    created = (await service.submit_change_request(pid, "Nieuwe foto's")).value
    await service.post_message(pid, "client", "Top!")
    code = (await service.get_or_create_referral_code(pid)).value

    project = (await service.get_project(pid)).value
    model = ProjectModel.model_validate(project)
    assert model.changes_this_month == 1
    assert [cr.description for cr in model.change_requests] == ["Nieuwe foto's"]
    assert [m.message for m in model.messages] == ["Top!"]

    [listed] = await service.list_projects(phase="live")
    assert listed.business_name == "Bakkerij de Vries"
    assert listed.referral_code == code

    [request] = await service.list_change_requests(project_id=pid)
    assert request.status == "pending"
    assert request.history[0]["status"] == "pending"

    assert (await service.change_request_stats(pid)).pending == 1
    assert (await service.lookup_referral_code(code)).value.project_id == pid

    evaluation = (await service.evaluate_checklist(pid)).value
    assert evaluation.complete

    check = (await service.check_phase_transition(pid, "design", "client")).value
    assert check.reason == ErrorKind.INVALID_TRANSITION

    updated = await service.update_change_request_status(created.id, "in_progress")
    assert updated.value.status == "in_progress"


@pytest.mark.asyncio
async def test_evaluate_checklist_on_new_project(service, project_factory):
    project = await project_factory()
    evaluation = (await service.evaluate_checklist(project.project_id)).value
    assert not evaluation.complete
    assert "payment_received" in evaluation.missing


@pytest.mark.asyncio
async def test_revision_phase_blocked_by_open_feedback(service, project_factory):
    project = await project_factory(phase="revisie", revisions_used=1)
    await service.submit_feedback(
        project.project_id, "design", [{"rating": "negative", "comment": "Nog steeds te druk"}]
    )

    blocked = await service.request_phase_transition(project.project_id, "payment", "client")
    assert blocked.error.kind == ErrorKind.UNRESOLVED_FEEDBACK


@pytest.mark.asyncio
async def test_domain_correction_requires_transfer(service, project_factory):
    project = await project_factory(phase="domain", payment_status="paid")
    pid = project.project_id

    await service.update_prelive_section(pid, "domain", {"has_domain": False})
    corrected = await service.update_prelive_section(
        pid, "domain", {"has_domain": True, "auth_code": "XK-2291"}
    )

    assert corrected.value.domain_info["transfer_status"] == "not_started"
    evaluation = (await service.evaluate_checklist(pid)).value
    assert "domain_transfer_completed" in evaluation.required


# ---------------------------------------------------------------------------
# Plumbing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stale_writes_are_retried(service, project_factory, monkeypatch):
    project = await project_factory()
    real_run_once = service._run_once
    calls = AsyncMock(side_effect=[StaleDataError("version mismatch"), None])

    async def flaky_run_once(project_id, operation):
        await calls()
        return await real_run_once(project_id, operation)

    monkeypatch.setattr(service, "_run_once", flaky_run_once)

    result = await service.request_phase_transition(project.project_id, "design", "client")
    assert result.ok
    assert calls.await_count == 2


@pytest.mark.asyncio
async def test_persistent_conflict_raises(service, project_factory, monkeypatch):
    project = await project_factory()
    run_once = AsyncMock(side_effect=StaleDataError("version mismatch"))
    monkeypatch.setattr(service, "_run_once", run_once)

    with pytest.raises(InfrastructureError) as exc_info:
        await service.request_phase_transition(project.project_id, "design", "client")
    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert run_once.await_count == service.retry_attempts


@pytest.mark.asyncio
async def test_notifier_failure_does_not_roll_back(service, project_factory, notifier, monkeypatch):
    project = await project_factory()
    monkeypatch.setattr(notifier, "send", AsyncMock(side_effect=RuntimeError("smtp down")))

    result = await service.request_phase_transition(project.project_id, "design", "client")
    assert result.ok
    assert (await service.get_project(project.project_id)).value.phase == "design"


@pytest.mark.asyncio
async def test_failed_operation_skips_notifications(service, project_factory, notifier):
    project = await project_factory()

    async def failing(store, proj, outbox):
        outbox.append(("phase_changed", "x@example.com", {}))
        return Result.failure(ErrorKind.INVALID_INPUT, "nope")

    result = await service._mutate("failing", project.project_id, failing)
    assert not result.ok
    assert notifier.sent == []

