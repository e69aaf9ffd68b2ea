"""Provisioning session tests.

Validates:
  - begin/advance/to_request through a full flow
  - step outputs are only applied when they fit the current step
  - blocked sessions resume at the same step once the condition clears
  - declined access setup is never re-offered
  - sessions survive a dict round trip; stored data is checked again on load
"""

from __future__ import annotations

import random
from dataclasses import replace

import pytest

from provisioner.catalog.resource_types import GRAPH, SECRET
from provisioner.errors import (
    ErrorCode,
    IncompleteSession,
    UnknownResourceType,
    UnknownSku,
)
from provisioner.identifiers import validate_identifier
from provisioner.wizard import (
    AccessGrant,
    AccessGranted,
    AccessSkipped,
    BillingConfirmed,
    ConfigurationSubmitted,
    FlowStatus,
    Project,
    ProjectSelected,
    ProvisioningContext,
    ProvisioningSession,
    ReviewConfirmed,
    StepKind,
    ValidationFailure,
    advance,
    begin,
    session_from_dict,
    session_to_dict,
    to_request,
    update_context,
)

_PROJECTS = (Project('proj-alpha', 'Alpha'), Project('proj-beta', 'Beta'))


def _context(**overrides) -> ProvisioningContext:
    values = {'is_authenticated': True, 'available_projects': _PROJECTS}
    values.update(overrides)
    return ProvisioningContext(**values)


def _step(session: ProvisioningSession) -> StepKind | None:
    current = session.evaluation().current
    return current.kind if current else None


def _ok(result) -> ProvisioningSession:
    assert not isinstance(result, ValidationFailure), result
    return result


def _configured(sku: str = 'free') -> ProvisioningSession:
    session = begin(GRAPH, _context(selected_sku=sku))
    session = _ok(advance(session, ProjectSelected('proj-alpha')))
    if sku != 'free':
        session = _ok(advance(session, BillingConfirmed()))
    return _ok(
        advance(
            session,
            ConfigurationSubmitted({'instances': 2}, name='My Graph'),
            rng=random.Random(3),
        )
    )


def _completed_dict(**overrides) -> dict:
    session = _ok(advance(_configured(), AccessSkipped()))
    data = session_to_dict(_ok(advance(session, ReviewConfirmed())))
    data.update(overrides)
    return data


class TestBegin:
    def test_starts_at_project_selection(self):
        session = begin(GRAPH, _context())
        assert _step(session) is StepKind.SELECT_OR_CREATE_PROJECT
        assert session.current_step_index == 0
        assert session.context.resource_type_id == GRAPH

    def test_defaults_to_first_tier(self):
        assert begin(GRAPH).context.selected_sku == 'standard'

    def test_unoffered_sku_falls_back(self):
        session = begin(SECRET, _context(selected_sku='free'))
        assert session.context.selected_sku == 'standard'

    def test_preselected_project_skips_selection(self):
        session = begin(GRAPH, _context(selected_project_id='proj-beta', selected_sku='free'))
        assert _step(session) is StepKind.CONFIGURE

    def test_unknown_type_raises(self):
        with pytest.raises(UnknownResourceType):
            begin('Konnektr.Nope', _context())

    def test_unauthenticated_start_is_blocked(self):
        session = begin(GRAPH)
        assert session.evaluation().status is FlowStatus.REQUIRES_AUTHENTICATION


class TestFullFlow:
    def test_paid_flow_with_access_grants(self):
        session = begin(GRAPH, _context(selected_sku='standard'))
        session = _ok(advance(session, ProjectSelected('proj-alpha')))
        assert _step(session) is StepKind.SETUP_BILLING

        session = _ok(advance(session, BillingConfirmed()))
        assert _step(session) is StepKind.CONFIGURE

        session = _ok(
            advance(
                session,
                ConfigurationSubmitted(
                    {'instances': 3, 'ignored': 'x'},
                    name='Prod Graph',
                    identifier='prod-graph',
                ),
            )
        )
        assert _step(session) is StepKind.GRANT_ACCESS

        session = _ok(
            advance(
                session,
                AccessGranted(
                    (
                        AccessGrant('ops@example.com', 'Owner'),
                        AccessGrant(' ops@example.com ', 'Owner'),
                        AccessGrant('dev@example.com', 'Viewer'),
                    )
                ),
            )
        )
        assert _step(session) is StepKind.REVIEW

        session = _ok(advance(session, ReviewConfirmed()))
        assert session.evaluation().is_complete

        request = to_request(session)
        assert request.resource_type_id == GRAPH
        assert request.sku == 'standard'
        assert request.project_id == 'proj-alpha'
        assert request.identifier == 'prod-graph'
        assert request.name == 'Prod Graph'
        assert request.configuration['instances'] == 3
        assert 'ignored' not in request.configuration
        assert request.access_grants == (
            AccessGrant('ops@example.com', 'Owner'),
            AccessGrant('dev@example.com', 'Viewer'),
        )

    def test_free_flow_with_skipped_access(self):
        session = _ok(advance(_configured(), AccessSkipped()))
        session = _ok(advance(session, ReviewConfirmed()))
        payload = to_request(session).to_payload()
        assert payload['type'] == GRAPH
        assert payload['sku'] == 'free'
        assert payload['access_grants'] == []
        assert payload['settings_json']['persistence'] == {
            'enabled': True,
            'storageSize': '10Gi',
        }

    def test_generated_identifier_is_valid(self):
        session = _configured()
        assert session.identifier.startswith('my-graph-')
        assert validate_identifier(session.identifier) is None
        assert session.name == 'My Graph'

    def test_created_project_is_added(self):
        session = begin(GRAPH, _context(available_projects=(), selected_sku='free'))
        created = Project('proj-new', 'New')
        session = _ok(advance(session, ProjectSelected('proj-new', project=created)))
        assert session.context.selected_project == created
        assert _step(session) is StepKind.CONFIGURE


class TestRejectedOutputs:
    def test_wrong_step_output(self):
        session = begin(GRAPH, _context())
        failure = advance(session, ReviewConfirmed())
        assert isinstance(failure, ValidationFailure)
        assert failure.code is ErrorCode.STEP_PRECONDITION_NOT_MET
        assert failure.step is StepKind.SELECT_OR_CREATE_PROJECT

    def test_unavailable_project(self):
        failure = advance(begin(GRAPH, _context()), ProjectSelected('proj-gone'))
        assert failure.code is ErrorCode.STEP_PRECONDITION_NOT_MET
        assert 'project_id' in failure.field_errors

    def test_blank_project(self):
        failure = advance(begin(GRAPH, _context()), ProjectSelected('  '))
        assert failure.field_errors == {'project_id': 'project_id is required'}

    def test_billing_not_confirmed(self):
        session = _ok(
            advance(begin(GRAPH, _context()), ProjectSelected('proj-alpha'))
        )
        failure = advance(session, BillingConfirmed(has_valid_billing=False))
        assert failure.step is StepKind.SETUP_BILLING

    def test_invalid_configuration_reports_all_fields(self):
        session = _ok(
            advance(
                begin(GRAPH, _context(selected_sku='free')),
                ProjectSelected('proj-alpha'),
            )
        )
        failure = advance(
            session,
            ConfigurationSubmitted(
                {'instances': 0, 'sinks': [{'type': 'webhook', 'name': 'w'}]},
                identifier='-bad',
            ),
        )
        assert failure.code is ErrorCode.FIELD_CONSTRAINT_VIOLATION
        assert failure.field_errors == {
            'identifier': 'ID must start with a lowercase letter',
            'instances': 'Must be at least 1',
            'sinks.0.url': 'This field is required',
        }
        assert _step(session) is StepKind.CONFIGURE

    def test_identifier_only_failure(self):
        session = _ok(
            advance(
                begin(GRAPH, _context(selected_sku='free')),
                ProjectSelected('proj-alpha'),
            )
        )
        failure = advance(session, ConfigurationSubmitted({}, identifier='ok--id'))
        assert failure.code is ErrorCode.INVALID_IDENTIFIER
        assert failure.field_errors == {
            'identifier': 'ID cannot contain consecutive hyphens',
        }

    def test_padded_identifier_is_checked_as_entered(self):
        session = _ok(
            advance(
                begin(GRAPH, _context(selected_sku='free')),
                ProjectSelected('proj-alpha'),
            )
        )
        failure = advance(session, ConfigurationSubmitted({}, identifier=' myid '))
        assert failure.code is ErrorCode.INVALID_IDENTIFIER
        assert failure.field_errors == {
            'identifier': 'ID must start with a lowercase letter',
        }

    def test_empty_grants_rejected(self):
        failure = advance(_configured(), AccessGranted(()))
        assert failure.code is ErrorCode.FIELD_CONSTRAINT_VIOLATION
        assert 'access_grants' in failure.field_errors

    def test_invalid_grant_fields(self):
        failure = advance(_configured(), AccessGranted((AccessGrant('', 'Admin'),)))
        assert set(failure.field_errors) == {
            'access_grants.0.principal',
            'access_grants.0.role',
        }

    def test_advance_after_complete(self):
        session = _ok(advance(_configured(), AccessSkipped()))
        session = _ok(advance(session, ReviewConfirmed()))
        failure = advance(session, ReviewConfirmed())
        assert failure.code is ErrorCode.STEP_PRECONDITION_NOT_MET
        assert failure.step is None

    def test_failure_to_dict(self):
        failure = advance(begin(GRAPH, _context()), ReviewConfirmed())
        data = failure.to_dict()
        assert data['code'] == 'step_precondition_not_met'
        assert data['step'] == 'select_or_create_project'
        assert data['field_errors'] == {}


class TestResume:
    def test_blocked_session_rejects_outputs(self):
        session = begin(GRAPH, _context(is_authenticated=False))
        failure = advance(session, ProjectSelected('proj-alpha'))
        assert failure.code is ErrorCode.REQUIRES_AUTHENTICATION

    def test_resumes_at_same_step_after_sign_in(self):
        session = _configured()
        signed_out = update_context(session, _context(is_authenticated=False))
        assert signed_out.evaluation().is_blocked
        assert signed_out.configuration == session.configuration

        signed_in = update_context(signed_out, _context())
        assert _step(signed_in) is StepKind.GRANT_ACCESS
        assert signed_in.context.selected_project_id == 'proj-alpha'

    def test_billing_lapse_returns_to_billing(self):
        session = _ok(advance(_configured('standard'), AccessSkipped()))
        assert _step(session) is StepKind.REVIEW
        lapsed = update_context(session, _context(has_valid_billing=False))
        assert _step(lapsed) is StepKind.SETUP_BILLING
        restored = update_context(lapsed, _context(has_valid_billing=True))
        assert _step(restored) is StepKind.REVIEW

    def test_skipped_access_is_never_reoffered(self):
        session = _ok(advance(_configured(), AccessSkipped()))
        refreshed = update_context(session, _context(wants_access_setup=None))
        assert refreshed.context.wants_access_setup is False
        assert _step(refreshed) is StepKind.REVIEW
        kinds = [step.kind for step in refreshed.evaluation().steps]
        assert StepKind.GRANT_ACCESS not in kinds

    def test_removed_project_returns_to_selection(self):
        session = _configured()
        refreshed = update_context(
            session, _context(available_projects=(Project('proj-beta'),)),
        )
        assert refreshed.context.selected_project_id is None
        assert _step(refreshed) is StepKind.SELECT_OR_CREATE_PROJECT

    def test_review_confirmation_cleared_on_regression(self):
        session = _ok(advance(_configured('standard'), AccessSkipped()))
        session = _ok(advance(session, ReviewConfirmed()))
        lapsed = update_context(session, _context(has_valid_billing=False))
        assert not lapsed.review_confirmed
        restored = update_context(lapsed, _context(has_valid_billing=True))
        assert _step(restored) is StepKind.REVIEW


class TestToRequest:
    def test_incomplete_session_raises(self):
        with pytest.raises(IncompleteSession) as exc_info:
            to_request(_configured())
        assert exc_info.value.state == 'grant_access'
        assert exc_info.value.code is ErrorCode.INCOMPLETE_SESSION

    def test_blocked_session_raises(self):
        with pytest.raises(IncompleteSession) as exc_info:
            to_request(begin(GRAPH))
        assert exc_info.value.state == 'requires_authentication'

    def test_unoffered_sku_raises(self):
        session = _ok(advance(_configured('standard'), AccessSkipped()))
        session = _ok(advance(session, ReviewConfirmed()))
        tampered = replace(
            session, context=replace(session.context, selected_sku='enterprise'),
        )
        assert tampered.evaluation().is_complete
        with pytest.raises(UnknownSku) as exc_info:
            to_request(tampered)
        assert exc_info.value.code is ErrorCode.UNKNOWN_SKU


class TestSerialization:
    def test_round_trip(self):
        session = _ok(
            advance(_configured(), AccessGranted((AccessGrant('a@b.c', 'Editor'),)))
        )
        restored = session_from_dict(session_to_dict(session))
        assert restored == session

    def test_step_index_is_recomputed(self):
        data = session_to_dict(_configured())
        data['current_step_index'] = 99
        assert session_from_dict(data).current_step_index == 2

    def test_unknown_type_raises(self):
        data = session_to_dict(_configured())
        data['resource_type_id'] = 'Konnektr.Nope'
        with pytest.raises(UnknownResourceType):
            session_from_dict(data)

    def test_invalid_stored_identifier_returns_to_configure(self):
        restored = session_from_dict(_completed_dict(identifier='-BAD--'))
        assert _step(restored) is StepKind.CONFIGURE
        assert restored.identifier == ''
        assert restored.configuration is None
        assert not restored.review_confirmed
        with pytest.raises(IncompleteSession) as exc_info:
            to_request(restored)
        assert exc_info.value.state == 'configure'

    def test_missing_stored_identifier_returns_to_configure(self):
        restored = session_from_dict(_completed_dict(identifier=''))
        assert _step(restored) is StepKind.CONFIGURE

    def test_stored_configuration_is_revalidated(self):
        data = _completed_dict(
            configuration={
                'instances': 999,
                'sinks': [{'type': 'webhook', 'bootstrapServers': 'k:9092'}],
            },
        )
        restored = session_from_dict(data)
        assert _step(restored) is StepKind.CONFIGURE
        assert restored.configuration is None
        with pytest.raises(IncompleteSession):
            to_request(restored)

    def test_stored_sibling_branch_fields_are_dropped(self):
        sink = {
            'type': 'webhook',
            'name': 'events',
            'url': 'https://example.com/hook',
            'bootstrapServers': 'k:9092',
            'topic': 'twins',
        }
        data = _completed_dict(configuration={'instances': 2, 'sinks': [sink]})
        restored = session_from_dict(data)
        assert restored.evaluation().is_complete
        submitted = to_request(restored).configuration['sinks'][0]
        assert submitted['url'] == 'https://example.com/hook'
        assert 'bootstrapServers' not in submitted
        assert 'topic' not in submitted
