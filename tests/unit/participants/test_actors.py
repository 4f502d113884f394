"""Unit tests for the ``Actor`` value object."""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.participants.actors import Actor
from modules.participants.models import ActorRole

pytestmark = pytest.mark.unit


class TestActor:
    def test_from_participant_copies_id_and_role(self, producer):
        actor = Actor.from_participant(producer)

        assert actor.id == producer.id
        assert actor.role == ActorRole.PRODUCER
        assert actor.is_producer
        assert not actor.is_admin

    def test_system_actor_has_no_id(self):
        actor = Actor.system()

        assert actor.id is None
        assert actor.role == ActorRole.SYSTEM

    def test_is_immutable(self, buyer):
        actor = Actor.from_participant(buyer)

        with pytest.raises(ValidationError):
            actor.role = ActorRole.ADMIN

    def test_equal_actors_are_interchangeable(self):
        participant_id = uuid4()
        first = Actor(id=participant_id, role=ActorRole.BUYER)
        second = Actor(id=str(participant_id), role="BUYER")

        assert first == second
        assert len({first, second}) == 1

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValidationError):
            Actor(id=uuid4(), role="AUDITOR")
