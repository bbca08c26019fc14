"""Tests for seat holds, reservation queries and ticket validation."""

from datetime import timedelta

from src.bookings.booking_service import BookingService
from src.bookings.ticket_service import TicketService
from src.database import utcnow
from src.models import Reservation, Ticket, ReservationStatus, PaymentMethod, TicketStatus
from tests.utils import BUS_CAPACITY, TRIP_PRICE, auth_headers, make_reservation


class TestCreateReservation:
    def test_client_holds_a_seat(self, client, db, world, bus):
        response = client.post(
            "/api/v1/reservations",
            json={"trip_id": world.trip.id, "seat_number": 2},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["seat_numbers"] == [2]
        assert body["passenger_name"] == world.client.name
        db.expire_all()
        assert world.trip.available_seats == 4

    def test_taken_seat_conflicts(self, client, db, world):
        make_reservation(db, world.trip, world.other_client, seat=2)

        response = client.post(
            "/api/v1/reservations",
            json={"trip_id": world.trip.id, "seat_number": 2},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 409

    def test_lapsed_hold_no_longer_blocks_its_seat(self, client, db, world):
        abandoned = make_reservation(db, world.trip, world.other_client, seat=2)
        abandoned.expires_at = utcnow() - timedelta(hours=3)
        db.commit()

        response = client.post(
            "/api/v1/reservations",
            json={"trip_id": world.trip.id, "seat_number": 2},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 201
        assert response.json()["seat_numbers"] == [2]

    def test_seat_outside_the_bus_is_rejected(self, client, world):
        response = client.post(
            "/api/v1/reservations",
            json={"trip_id": world.trip.id, "seat_number": 99},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 400

    def test_only_clients_reserve_online(self, client, world):
        response = client.post(
            "/api/v1/reservations",
            json={"trip_id": world.trip.id, "seat_number": 1},
            headers=auth_headers(world.patron),
        )

        assert response.status_code == 401


class TestReservationQueries:
    def test_clients_only_see_their_own_reservations(self, client, db, world):
        mine = make_reservation(db, world.trip, world.client, seat=1)
        make_reservation(db, world.trip, world.other_client, seat=2)

        response = client.get("/api/v1/reservations", headers=auth_headers(world.client))

        assert [r["id"] for r in response.json()] == [mine.id]

    def test_staff_see_their_company_reservations(self, client, db, world):
        make_reservation(db, world.trip, world.client, seat=1)
        make_reservation(db, world.trip, world.other_client, seat=2)

        mine = client.get("/api/v1/reservations", headers=auth_headers(world.gestionnaire))
        rival = client.get("/api/v1/reservations", headers=auth_headers(world.rival_caissier))

        assert len(mine.json()) == 2
        assert rival.json() == []

    def test_reservation_detail_includes_tickets(self, client, db, world, bus):
        reservation = make_reservation(db, world.trip, world.client, seat=1)
        BookingService(db, bus).process_payment(reservation.id, PaymentMethod.CASH)

        response = client.get(f"/api/v1/reservations/{reservation.id}", headers=auth_headers(world.client))

        assert response.status_code == 200
        assert len(response.json()["tickets"]) == 1

    def test_stale_holds_expire(self, db, world, bus):
        reservation = make_reservation(db, world.trip, world.client, seat=1)
        later = BookingService(db, bus, clock=lambda: reservation.expires_at + timedelta(minutes=1))

        expired = later.expire_stale_reservations()

        assert expired == 1
        db.expire_all()
        assert db.get(Reservation, reservation.id).status == ReservationStatus.EXPIRED


class TestTicketValidation:
    def confirmed_ticket(self, db, world, bus):
        reservation = make_reservation(db, world.trip, world.client, seat=1)
        _, tickets, _ = BookingService(db, bus).process_payment(reservation.id, PaymentMethod.CASH)
        return tickets[0]

    def test_ticket_is_accepted_once(self, client, db, world, bus):
        ticket = self.confirmed_ticket(db, world, bus)
        payload = TicketService(db).build_qr_payload(ticket)
        headers = auth_headers(world.gestionnaire)

        first = client.post("/api/v1/tickets/validate", json={"qrData": payload}, headers=headers)
        second = client.post("/api/v1/tickets/validate", json={"qrData": payload}, headers=headers)

        assert first.status_code == 200
        assert first.json()["ticket"]["status"] == "USED"
        assert second.status_code == 400
        db.expire_all()
        assert db.get(Ticket, ticket.id).status == TicketStatus.USED

    def test_tampered_payload_is_refused(self, client, db, world, bus):
        ticket = self.confirmed_ticket(db, world, bus)
        payload = TicketService(db).build_qr_payload(ticket)
        payload["hash"] = "0" * 16

        response = client.post("/api/v1/tickets/validate", json={"qrData": payload}, headers=auth_headers(world.caissier))

        assert response.status_code == 400
        db.expire_all()
        assert db.get(Ticket, ticket.id).status == TicketStatus.VALID

    def test_other_company_staff_cannot_validate(self, client, db, world, bus):
        ticket = self.confirmed_ticket(db, world, bus)
        payload = TicketService(db).build_qr_payload(ticket)

        response = client.post("/api/v1/tickets/validate", json={"qrData": payload}, headers=auth_headers(world.rival_caissier))

        assert response.status_code == 403

    def test_owner_fetches_qr_image(self, client, db, world, bus):
        ticket = self.confirmed_ticket(db, world, bus)

        mine = client.get(f"/api/v1/tickets/{ticket.id}/qr", headers=auth_headers(world.client))
        theirs = client.get(f"/api/v1/tickets/{ticket.id}/qr", headers=auth_headers(world.other_client))

        assert mine.status_code == 200
        assert mine.json()["qr_code_url"].startswith("data:image/png;base64,")
        assert mine.json()["qr_data"]["ticketCode"] == ticket.ticket_code
        assert theirs.status_code == 403

    def test_non_scalar_ticket_id_is_a_validation_error(self, client, world):
        response = client.post(
            "/api/v1/tickets/validate",
            json={"qrData": {"ticketId": [1, 2], "hash": "0" * 16}},
            headers=auth_headers(world.caissier),
        )

        assert response.status_code == 400


def guest_payload(trip, seats=2):
    return {
        "tripId": trip.id,
        "passengerName": "Awa Traoré",
        "passengerEmail": "awa@test.local",
        "passengerPhone": "70112233",
        "numberOfSeats": seats,
        "paymentMethod": "MOBILE_MONEY",
    }


class TestGuestReservation:
    def test_guest_holds_seats_without_an_account(self, client, db, world, bus):
        make_reservation(db, world.trip, world.client, seat=1)

        response = client.post("/api/v1/reservations/guest", json=guest_payload(world.trip))

        assert response.status_code == 201
        body = response.json()
        assert body["user_id"] is None
        assert body["status"] == "PENDING"
        assert body["seat_numbers"] == [2, 3]
        assert body["passenger_email"] == "awa@test.local"
        assert float(body["total_amount"]) == float(TRIP_PRICE * 2)
        db.expire_all()
        assert world.trip.available_seats == BUS_CAPACITY
        assert "reservation-updated" in bus.events_for(f"company-{world.company.id}")

    def test_staff_confirm_guest_payment(self, client, db, world):
        created = client.post("/api/v1/reservations/guest", json=guest_payload(world.trip)).json()

        response = client.post(
            "/api/v1/payment",
            json={"reservationId": created["id"], "paymentMethod": "CASH"},
            headers=auth_headers(world.caissier),
        )

        assert response.status_code == 200
        assert len(response.json()["tickets"]) == 2
        db.expire_all()
        assert world.trip.available_seats == BUS_CAPACITY - 2
        assert db.get(Reservation, created["id"]).status == ReservationStatus.CONFIRMED

    def test_clients_cannot_pay_guest_reservations(self, client, world):
        created = client.post("/api/v1/reservations/guest", json=guest_payload(world.trip, seats=1)).json()

        response = client.post(
            "/api/v1/payment",
            json={"reservationId": created["id"], "paymentMethod": "CASH"},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 403

    def test_more_seats_than_left_conflicts(self, client, db, world):
        make_reservation(db, world.trip, world.client, seat=1)

        response = client.post("/api/v1/reservations/guest", json=guest_payload(world.trip, seats=BUS_CAPACITY))

        assert response.status_code == 409
        assert db.query(Reservation).count() == 1

    def test_invalid_guest_email_is_rejected(self, client, world):
        payload = guest_payload(world.trip)
        payload["passengerEmail"] = "not-an-email"

        response = client.post("/api/v1/reservations/guest", json=payload)

        assert response.status_code == 400
