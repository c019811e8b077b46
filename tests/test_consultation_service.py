from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch
from urllib.parse import unquote

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from convenio.domain.consultations.service import ConsultationService
from convenio.domain.patients import PatientReferenceResolver
from convenio.errors import InvalidInput, InvalidTransition, NotFound, SubscriptionInactive
from convenio.models import Consultation


@pytest.fixture
def consultations(db_session):
    return ConsultationService(db_session)


@pytest.fixture
def book(db_session, consultations, professional, service):
    """Create a consultation for a resolved patient with sensible defaults"""

    def _book(when=datetime(2024, 3, 4, 12, 0), value=Decimal("150.00"), **patient):
        ref = PatientReferenceResolver(db_session).resolve(**patient)
        return consultations.create(
            professional.id, ref, service_id=service.id, value=value, when=when
        )

    return _book


class TestCreate:
    def test_creates_scheduled_consultation(self, book, active_member, professional):
        consultation = book(member_id=active_member.id)

        assert consultation.id is not None
        assert consultation.status == "scheduled"
        assert consultation.professional_id == professional.id
        assert consultation.user_id == active_member.id
        assert consultation.dependent_id is None
        assert consultation.private_patient_id is None
        assert consultation.value == Decimal("150.00")

    def test_inactive_member_is_rejected(self, book, pending_member, db_session):
        with pytest.raises(SubscriptionInactive):
            book(member_id=pending_member.id)
        assert db_session.query(Consultation).count() == 0

    def test_private_patient_needs_no_subscription(self, book, private_patient):
        consultation = book(private_patient_id=private_patient.id)
        assert consultation.private_patient_id == private_patient.id

    def test_private_patient_of_another_professional_is_not_found(
        self, db_session, consultations, other_professional, private_patient, service
    ):
        ref = PatientReferenceResolver(db_session).resolve(private_patient_id=private_patient.id)
        with pytest.raises(NotFound):
            consultations.create(
                other_professional.id, ref, service_id=service.id, value=100, when=datetime(2024, 1, 1)
            )

    @pytest.mark.parametrize("value", [0, -10, "abc", None])
    def test_non_positive_value_is_rejected(self, book, private_patient, value):
        with pytest.raises(InvalidInput) as exc:
            book(private_patient_id=private_patient.id, value=value)
        assert exc.value.field == "value"

    def test_unknown_service_is_not_found(
        self, db_session, consultations, professional, private_patient
    ):
        ref = PatientReferenceResolver(db_session).resolve(private_patient_id=private_patient.id)
        with pytest.raises(NotFound) as exc:
            consultations.create(professional.id, ref, service_id=404, value=100, when=datetime(2024, 1, 1))
        assert exc.value.field == "service_id"

    def test_aware_datetime_is_stored_as_utc(self, book, private_patient):
        brasilia = timezone(timedelta(hours=-3))
        consultation = book(
            private_patient_id=private_patient.id, when=datetime(2024, 3, 4, 9, 0, tzinfo=brasilia)
        )
        assert consultation.date == datetime(2024, 3, 4, 12, 0)


class TestStatus:
    def test_scheduled_to_confirmed_to_completed(self, book, consultations, private_patient, professional):
        consultation = book(private_patient_id=private_patient.id)

        consultations.set_status(consultation.id, professional.id, "confirmed")
        updated = consultations.set_status(consultation.id, professional.id, "completed")

        assert updated.status == "completed"

    def test_completed_cannot_go_back_to_scheduled(
        self, book, consultations, private_patient, professional
    ):
        consultation = book(private_patient_id=private_patient.id)
        consultations.set_status(consultation.id, professional.id, "completed")

        with pytest.raises(InvalidTransition):
            consultations.set_status(consultation.id, professional.id, "scheduled")

        assert consultations.set_status(consultation.id, professional.id, "completed").status == "completed"

    def test_same_status_does_not_touch_updated_at(
        self, book, consultations, private_patient, professional
    ):
        consultation = book(private_patient_id=private_patient.id)
        before = consultation.updated_at

        again = consultations.set_status(consultation.id, professional.id, "scheduled")

        assert again.updated_at == before

    def test_other_professional_gets_not_found(
        self, book, consultations, private_patient, other_professional
    ):
        consultation = book(private_patient_id=private_patient.id)
        with pytest.raises(NotFound):
            consultations.set_status(consultation.id, other_professional.id, "confirmed")


class TestUpdateFull:
    def test_partial_update_only_touches_given_fields(
        self, book, consultations, private_patient, professional, location
    ):
        consultation = book(private_patient_id=private_patient.id)

        updated = consultations.update_full(
            consultation.id,
            professional.id,
            {"location_id": location.id, "notes": "Trazer exames"},
        )

        assert updated.location_id == location.id
        assert updated.notes == "Trazer exames"
        assert updated.value == Decimal("150.00")
        assert updated.status == "scheduled"

    def test_invalid_value_leaves_row_untouched(
        self, book, consultations, private_patient, professional, db_session
    ):
        consultation = book(private_patient_id=private_patient.id)

        with pytest.raises(InvalidInput):
            consultations.update_full(
                consultation.id, professional.id, {"notes": "changed", "value": 0}
            )

        db_session.expire_all()
        assert db_session.get(Consultation, consultation.id).notes is None

    def test_illegal_status_in_full_update(self, book, consultations, private_patient, professional):
        consultation = book(private_patient_id=private_patient.id)
        consultations.set_status(consultation.id, professional.id, "cancelled")

        with pytest.raises(InvalidTransition):
            consultations.update_full(consultation.id, professional.id, {"status": "confirmed"})

    def test_unknown_status_in_full_update(self, book, consultations, private_patient, professional):
        consultation = book(private_patient_id=private_patient.id)
        with pytest.raises(InvalidInput):
            consultations.update_full(consultation.id, professional.id, {"status": "missed"})

    def test_location_of_another_professional_is_rejected(
        self, book, consultations, private_patient, professional, db_session, other_professional
    ):
        from convenio.models import AttendanceLocation

        foreign = AttendanceLocation(professional_id=other_professional.id, name="Outra")
        db_session.add(foreign)
        db_session.commit()
        consultation = book(private_patient_id=private_patient.id)

        with pytest.raises(NotFound):
            consultations.update_full(consultation.id, professional.id, {"location_id": foreign.id})

    def test_always_stamps_updated_at(self, book, consultations, private_patient, professional):
        consultation = book(private_patient_id=private_patient.id)
        before = consultation.updated_at

        updated = consultations.update_full(consultation.id, professional.id, {})

        assert updated.updated_at >= before


class TestDelete:
    def test_hard_delete(self, book, consultations, private_patient, professional, db_session):
        consultation = book(private_patient_id=private_patient.id)
        consultations.delete(consultation.id, professional.id)
        assert db_session.query(Consultation).count() == 0

    def test_delete_not_owned(self, book, consultations, private_patient, other_professional):
        consultation = book(private_patient_id=private_patient.id)
        with pytest.raises(NotFound):
            consultations.delete(consultation.id, other_professional.id)


class TestListings:
    def test_agenda_for_local_day(self, book, consultations, private_patient, professional, active_member):
        # 2024-03-05 01:30 UTC is still 2024-03-04 in Brasília
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 5, 1, 30))
        book(member_id=active_member.id, when=datetime(2024, 3, 4, 12, 0))
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 5, 12, 0))

        entries = consultations.list_for_agenda(professional.id, date(2024, 3, 4), -180)

        assert [e["date"] for e in entries] == [
            datetime(2024, 3, 4, 12, 0),
            datetime(2024, 3, 5, 1, 30),
        ]
        assert entries[0]["patient_type"] == "convenio"
        assert entries[0]["patient_name"] == "Maria Souza"
        assert entries[0]["service_name"] == "Consulta Quiropraxia"
        assert entries[1]["patient_type"] == "private"
        assert entries[1]["is_dependent"] is False

    def test_agenda_without_date_lists_everything(self, book, consultations, private_patient, professional):
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 5, 12, 0))
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 4, 12, 0))

        entries = consultations.list_for_agenda(professional.id)

        assert [e["date"].day for e in entries] == [4, 5]

    def test_patient_history_includes_dependents(
        self, book, consultations, active_member, make_dependent, make_user
    ):
        dependent = make_dependent(active_member, name="Pedro Souza", subscription_status="active")
        stranger = make_user(subscription_status="active")
        book(member_id=active_member.id, when=datetime(2024, 3, 1, 12, 0))
        book(dependent_id=dependent.id, when=datetime(2024, 3, 2, 12, 0))
        book(member_id=stranger.id, when=datetime(2024, 3, 3, 12, 0))

        history = consultations.list_for_patient_history(active_member.id)

        assert [e["patient_name"] for e in history] == ["Pedro Souza", "Maria Souza"]
        assert history[0]["is_dependent"] is True

    def test_list_all_newest_first(self, book, consultations, private_patient):
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 1, 12, 0))
        book(private_patient_id=private_patient.id, when=datetime(2024, 3, 9, 12, 0))

        entries = consultations.list_all()

        assert entries[0]["date"] > entries[1]["date"]
        assert entries[0]["professional_name"] == "Dr. Ana Ferreira"


class TestWhatsAppLink:
    def test_member_phone_and_local_time(self, book, consultations, active_member, professional):
        consultation = book(member_id=active_member.id, when=datetime(2024, 3, 4, 12, 0))

        url = consultations.whatsapp_link(consultation.id, professional.id)

        assert url.startswith("https://wa.me/5511987654321?text=")
        assert unquote(url.split("text=")[1]) == (
            "Olá Maria Souza, sua consulta está confirmada para 04/03/2024 às 09:00"
        )

    def test_dependent_uses_member_phone(
        self, book, consultations, active_member, make_dependent, professional
    ):
        dependent = make_dependent(active_member, subscription_status="active")
        consultation = book(dependent_id=dependent.id)

        url = consultations.whatsapp_link(consultation.id, professional.id)

        assert url.startswith("https://wa.me/5511987654321?")

    def test_missing_phone(self, db_session, book, consultations, professional, private_patient):
        private_patient.phone = None
        db_session.commit()
        consultation = book(private_patient_id=private_patient.id)

        with pytest.raises(InvalidInput) as exc:
            consultations.whatsapp_link(consultation.id, professional.id)
        assert exc.value.field == "phone"

    def test_offset_out_of_range(self, book, consultations, active_member, professional):
        consultation = book(member_id=active_member.id)

        with pytest.raises(InvalidInput) as exc:
            consultations.whatsapp_link(consultation.id, professional.id, 10**12)
        assert exc.value.field == "timezone_offset"


class TestAgendaBounds:
    def test_offset_out_of_range(self, consultations, professional):
        with pytest.raises(InvalidInput) as exc:
            consultations.list_for_agenda(professional.id, date(2024, 3, 4), 10**12)
        assert exc.value.field == "timezone_offset"

    def test_last_representable_day(self, consultations, professional):
        with pytest.raises(InvalidInput) as exc:
            consultations.list_for_agenda(professional.id, date(9999, 12, 31), -180)
        assert exc.value.field == "date"


class TestFailedCommit:
    def test_status_change_is_rolled_back(
        self, book, consultations, private_patient, professional, db_session
    ):
        consultation = book(private_patient_id=private_patient.id)
        broken = OperationalError("UPDATE consultations", {}, Exception("database is locked"))

        with patch.object(db_session, "commit", side_effect=broken):
            with pytest.raises(OperationalError):
                consultations.set_status(consultation.id, professional.id, "confirmed")

        assert not db_session.dirty
        assert db_session.get(Consultation, consultation.id).status == "scheduled"

    def test_delete_is_rolled_back(
        self, book, consultations, private_patient, professional, db_session
    ):
        consultation = book(private_patient_id=private_patient.id)
        broken = OperationalError("DELETE FROM consultations", {}, Exception("database is locked"))

        with patch.object(db_session, "commit", side_effect=broken):
            with pytest.raises(OperationalError):
                consultations.delete(consultation.id, professional.id)

        assert not db_session.deleted
        assert db_session.query(Consultation).count() == 1


class TestTableConstraints:
    """Rows written around the service still hold to the table's CHECK constraints"""

    @pytest.fixture
    def insert(self, db_session, professional, service):
        def _insert(**fields):
            row = {
                "professional_id": professional.id,
                "service_id": service.id,
                "value": Decimal("100.00"),
                "date": datetime(2024, 3, 4, 12, 0),
                "status": "scheduled",
            }
            row.update(fields)
            db_session.add(Consultation(**row))
            try:
                db_session.flush()
            finally:
                db_session.rollback()

        return _insert

    def test_two_patient_references(self, insert, active_member, private_patient):
        with pytest.raises(IntegrityError):
            insert(user_id=active_member.id, private_patient_id=private_patient.id)

    def test_no_patient_reference(self, insert):
        with pytest.raises(IntegrityError):
            insert()

    @pytest.mark.parametrize("value", [Decimal("0.00"), Decimal("-10.00")])
    def test_value_must_be_positive(self, insert, private_patient, value):
        with pytest.raises(IntegrityError):
            insert(private_patient_id=private_patient.id, value=value)

    def test_single_reference_is_accepted(self, insert, private_patient):
        insert(private_patient_id=private_patient.id)
