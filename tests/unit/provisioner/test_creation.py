"""Resource-creation collaborator tests."""

from __future__ import annotations

import pytest

from provisioner.catalog.resource_types import GRAPH
from provisioner.errors import IncompleteSession
from provisioner.wizard import (
    AccessSkipped,
    ConfigurationSubmitted,
    InMemoryResourceCreator,
    Project,
    ProjectSelected,
    ProvisioningContext,
    ResourceCreator,
    ReviewConfirmed,
    advance,
    begin,
    submit_session,
)


def _complete_session():
    context = ProvisioningContext(
        is_authenticated=True,
        available_projects=(Project('proj-alpha', 'Alpha'),),
        selected_sku='free',
    )
    session = begin(GRAPH, context)
    for output in (
        ProjectSelected('proj-alpha'),
        ConfigurationSubmitted({'instances': 1}, name='Twins', identifier='twins'),
        AccessSkipped(),
        ReviewConfirmed(),
    ):
        session = advance(session, output)
    return session


class TestInMemoryResourceCreator:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryResourceCreator(), ResourceCreator)

    @pytest.mark.asyncio
    async def test_submit_complete_session(self):
        creator = InMemoryResourceCreator()
        resource = await submit_session(_complete_session(), creator)
        assert resource['resource_id'] == 'twins'
        assert resource['project_id'] == 'proj-alpha'
        assert resource['status'] == 'provisioning'
        assert resource['settings_json']['instances'] == 1
        assert len(creator.requests) == 1
        assert creator.requests[0].name == 'Twins'

    @pytest.mark.asyncio
    async def test_incomplete_session_never_reaches_creator(self):
        creator = InMemoryResourceCreator()
        with pytest.raises(IncompleteSession):
            await submit_session(begin(GRAPH), creator)
        assert creator.requests == []

    @pytest.mark.asyncio
    async def test_duplicate_submissions_are_not_deduplicated(self):
        creator = InMemoryResourceCreator()
        session = _complete_session()
        await submit_session(session, creator)
        await submit_session(session, creator)
        assert len(creator.requests) == 2
