"""
Tests for employee access codes

Patrons issue one-time codes; employees exchange them with their phone
number for an eight hour session.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.auth.utils import verify_token
from src.config import settings
from src.database import utcnow
from src.employees.code_service import CODE_ALPHABET, EmployeeCodeService
from src.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from src.models import ActivityLog, ActivityType, EmployeeAuthCode, UserStatus
from tests.utils import auth_headers


def verify_payload(employee, code):
    return {"phone": employee.phone, "countryCode": employee.country_code, "code": code}


class TestGenerateCode:
    def test_patron_generates_code_for_own_employee(self, client, world):
        before = utcnow()

        response = client.post(
            "/api/v1/employee/generate-code",
            json={"employeeId": world.caissier.id},
            headers=auth_headers(world.patron),
        )

        assert response.status_code == 200
        body = response.json()
        code = body["code"]
        assert code.startswith("EMP")
        assert len(code) == 9
        assert all(char in CODE_ALPHABET for char in code[3:])
        expires_at = datetime.fromisoformat(body["expiresAt"])
        assert timedelta(hours=7, minutes=59) < expires_at - before <= timedelta(hours=8, minutes=1)

    def test_non_patron_is_rejected(self, client, world):
        response = client.post(
            "/api/v1/employee/generate-code",
            json={"employeeId": world.caissier.id},
            headers=auth_headers(world.gestionnaire),
        )

        assert response.status_code == 401

    def test_patron_of_another_company_is_forbidden(self, db, world):
        with pytest.raises(ForbiddenError):
            EmployeeCodeService(db).generate_code(world.caissier.id, world.other_patron)

    def test_inactive_employee_cannot_receive_code(self, db, world):
        world.caissier.status = UserStatus.SUSPENDED
        db.commit()

        with pytest.raises(ValidationError):
            EmployeeCodeService(db).generate_code(world.caissier.id, world.patron)

    def test_activity_records_code_id_but_never_the_code(self, db, world):
        auth_code = EmployeeCodeService(db).generate_code(world.gestionnaire.id, world.patron)

        entry = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.EMPLOYEE_CODE_GENERATED).one()
        assert entry.activity_metadata["code_id"] == auth_code.id
        assert entry.activity_metadata["employee_id"] == world.gestionnaire.id
        assert auth_code.code not in str(entry.activity_metadata)
        assert auth_code.code not in entry.description

    def test_used_codes_are_purged_on_regeneration(self, db, world):
        service = EmployeeCodeService(db)
        first = service.generate_code(world.caissier.id, world.patron)
        service.verify_code(world.caissier.phone, world.caissier.country_code, first.code)

        service.generate_code(world.caissier.id, world.patron)

        codes = db.query(EmployeeAuthCode).filter(EmployeeAuthCode.employee_id == world.caissier.id).all()
        assert len(codes) == 1
        assert codes[0].used_at is None


class TestVerifyCode:
    def test_valid_code_opens_an_employee_session(self, client, db, world):
        auth_code = EmployeeCodeService(db).generate_code(world.caissier.id, world.patron)

        response = client.post("/api/v1/employee/verify", json=verify_payload(world.caissier, auth_code.code))

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["id"] == world.caissier.id
        assert settings.SESSION_COOKIE_NAME in response.cookies
        claims = verify_token(body["access_token"])
        assert claims["user_id"] == world.caissier.id
        assert claims["role"] == "CAISSIER"
        assert claims["company_id"] == world.company.id

    def test_session_token_expires_after_eight_hours(self, db, world):
        service = EmployeeCodeService(db)
        auth_code = service.generate_code(world.gestionnaire.id, world.patron)

        _, token = service.verify_code(world.gestionnaire.phone, world.gestionnaire.country_code, auth_code.code)

        claims = verify_token(token)
        lifetime = datetime.fromtimestamp(claims["exp"], tz=timezone.utc).replace(tzinfo=None) - utcnow()
        assert timedelta(hours=7, minutes=59) < lifetime <= timedelta(hours=8)

    def test_code_can_only_be_used_once(self, client, db, world):
        auth_code = EmployeeCodeService(db).generate_code(world.caissier.id, world.patron)
        payload = verify_payload(world.caissier, auth_code.code)

        first = client.post("/api/v1/employee/verify", json=payload)
        second = client.post("/api/v1/employee/verify", json=payload)

        assert first.status_code == 200
        assert second.status_code == 401

    def test_expired_code_is_rejected(self, db, world):
        auth_code = EmployeeCodeService(db).generate_code(world.caissier.id, world.patron)
        later = EmployeeCodeService(db, clock=lambda: auth_code.expires_at + timedelta(seconds=1))

        with pytest.raises(UnauthorizedError):
            later.verify_code(world.caissier.phone, world.caissier.country_code, auth_code.code)

    def test_code_of_another_employee_is_rejected(self, db, world):
        auth_code = EmployeeCodeService(db).generate_code(world.caissier.id, world.patron)

        with pytest.raises(UnauthorizedError):
            EmployeeCodeService(db).verify_code(
                world.gestionnaire.phone, world.gestionnaire.country_code, auth_code.code
            )

    def test_unknown_phone_is_rejected(self, client, world):
        response = client.post(
            "/api/v1/employee/verify",
            json={"phone": "79999999", "countryCode": "+226", "code": "EMPABCDEF"},
        )

        assert response.status_code == 401

    def test_login_is_recorded(self, db, world):
        service = EmployeeCodeService(db)
        auth_code = service.generate_code(world.caissier.id, world.patron)

        service.verify_code(world.caissier.phone, world.caissier.country_code, auth_code.code)

        entry = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.EMPLOYEE_LOGIN).one()
        assert entry.actor_id == world.caissier.id
        assert entry.company_id == world.company.id


class TestEmployeeManagement:
    def test_patron_adds_and_lists_employees(self, client, world):
        headers = auth_headers(world.patron)

        created = client.post(
            f"/api/v1/companies/{world.company.id}/employees",
            json={"name": "Nouveau Caissier", "phone": "70000099", "country_code": "+226", "role": "CAISSIER"},
            headers=headers,
        )
        listing = client.get(f"/api/v1/companies/{world.company.id}/employees", headers=headers)

        assert created.status_code == 201
        assert created.json()["company_id"] == world.company.id
        assert {e["name"] for e in listing.json()} == {"Gestionnaire", "Caissier", "Nouveau Caissier"}

    def test_employee_role_must_be_staff(self, client, world):
        response = client.post(
            f"/api/v1/companies/{world.company.id}/employees",
            json={"name": "Intrus", "phone": "70000098", "country_code": "+226", "role": "ADMIN"},
            headers=auth_headers(world.patron),
        )

        assert response.status_code == 400

    def test_suspended_employee_loses_access(self, client, world):
        headers = auth_headers(world.caissier)
        client.patch(
            f"/api/v1/employees/{world.caissier.id}/status",
            json={"status": "SUSPENDED"},
            headers=auth_headers(world.patron),
        )

        response = client.get("/api/v1/auth/me", headers=headers)

        assert response.status_code == 401
