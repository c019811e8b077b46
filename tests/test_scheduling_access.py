from datetime import timedelta

import pytest

from convenio.domain.scheduling_access.service import SchedulingAccessService, grant_is_effective
from convenio.errors import InvalidInput, NoActiveGrant, NotFound
from convenio.models import Notification, SchedulingAccess
from convenio.shared.time_utils import utcnow


@pytest.fixture
def ledger(db_session):
    return SchedulingAccessService(db_session)


def active_grants(db_session, professional_id):
    return (
        db_session.query(SchedulingAccess)
        .filter(
            SchedulingAccess.professional_id == professional_id,
            SchedulingAccess.is_active.is_(True),
        )
        .all()
    )


class TestGrant:
    def test_grant_then_grant_leaves_one_active(self, ledger, db_session, professional, admin):
        first = ledger.grant(professional.id, utcnow() + timedelta(days=10), granted_by=admin.id)
        second = ledger.grant(
            professional.id, utcnow() + timedelta(days=40), reason="Cortesia", granted_by=admin.id
        )

        grants = active_grants(db_session, professional.id)
        assert [g.id for g in grants] == [second.id]
        db_session.refresh(first)
        assert first.is_active is False
        assert second.granted_by == admin.id
        assert second.reason == "Cortesia"

    def test_grant_notifies_professional(self, ledger, db_session, professional, admin):
        ledger.grant(professional.id, utcnow() + timedelta(days=10), reason="Trial", granted_by=admin.id)

        notification = db_session.query(Notification).one()
        assert notification.user_id == professional.id
        assert notification.type == "success"
        assert "Trial" in notification.message

    def test_expiry_must_be_in_the_future(self, ledger, professional):
        with pytest.raises(InvalidInput) as exc:
            ledger.grant(professional.id, utcnow() - timedelta(minutes=1))
        assert exc.value.field == "expires_at"

    def test_unknown_professional(self, ledger, active_member):
        with pytest.raises(NotFound):
            ledger.grant(active_member.id, utcnow() + timedelta(days=1))

    def test_blank_reason_is_stored_as_null(self, ledger, professional):
        grant = ledger.grant(professional.id, utcnow() + timedelta(days=1), reason="   ")
        assert grant.reason is None


class TestRevoke:
    def test_revoke_active_grant(self, ledger, db_session, professional, admin):
        granted = ledger.grant(professional.id, utcnow() + timedelta(days=10), granted_by=admin.id)

        revoked = ledger.revoke(professional.id, revoked_by=admin.id)

        assert revoked.id == granted.id
        assert revoked.is_active is False
        assert active_grants(db_session, professional.id) == []
        assert ledger.is_effective(professional.id) is False
        assert db_session.query(Notification).filter(Notification.type == "warning").count() == 1

    def test_revoke_without_grant(self, ledger, professional):
        with pytest.raises(NoActiveGrant) as exc:
            ledger.revoke(professional.id)
        assert exc.value.status_code == 404


class TestEffectiveness:
    def test_expired_grant_is_not_effective(self, ledger, db_session, professional):
        db_session.add(
            SchedulingAccess(
                professional_id=professional.id,
                expires_at=utcnow() - timedelta(hours=1),
                is_active=True,
            )
        )
        db_session.commit()

        assert ledger.current_grant(professional.id) is not None
        assert ledger.is_effective(professional.id) is False

    def test_effective_until_expiry(self, ledger, professional):
        grant = ledger.grant(professional.id, utcnow() + timedelta(days=1))

        assert ledger.is_effective(professional.id) is True
        assert grant_is_effective(grant, now=grant.expires_at) is False
        assert grant_is_effective(None) is False

    def test_paid_grant(self, ledger, db_session, professional):
        before = utcnow()
        grant = ledger.apply_paid_grant(professional.id, 30)
        db_session.commit()

        assert grant.granted_by is None
        assert grant.expires_at >= before + timedelta(days=30)
        assert ledger.is_effective(professional.id)


class TestOverview:
    def test_lists_professionals_with_current_grant(
        self, ledger, professional, other_professional, admin, active_member
    ):
        ledger.grant(professional.id, utcnow() + timedelta(days=5), reason="Pago", granted_by=admin.id)

        rows = ledger.list_professionals()

        assert [r["name"] for r in rows] == ["Dr. Ana Ferreira", "Dr. Bruno Reis"]
        ana, bruno = rows
        assert ana["has_scheduling_access"] is True
        assert ana["access_granted_by"] == "Admin"
        assert ana["access_reason"] == "Pago"
        assert ana["category_name"] == "Quiropraxia"
        assert bruno["has_scheduling_access"] is False
        assert bruno["access_expires_at"] is None
