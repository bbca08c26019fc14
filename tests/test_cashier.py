"""Tests for walk-in ticket sales at the company desk."""

from datetime import timedelta
from decimal import Decimal

from src.database import utcnow
from src.models import Reservation, Payment, ReservationStatus, BookingSource, PaymentStatus
from tests.utils import BUS_CAPACITY, auth_headers, make_reservation


def sale_payload(trip, tickets=1, amount="5000"):
    return {
        "tripId": trip.id,
        "passengerName": "Passager Guichet",
        "passengerPhone": "76000000",
        "numberOfTickets": tickets,
        "amountPaid": amount,
        "paymentMethod": "CASH",
    }


class TestSellTicket:
    def test_sale_takes_lowest_free_seats_and_confirms(self, client, db, world, bus):
        make_reservation(db, world.trip, world.client, seat=1)

        response = client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip, tickets=2, amount="10000"),
            headers=auth_headers(world.caissier),
        )

        assert response.status_code == 201
        body = response.json()
        assert sorted(t["seat_number"] for t in body["tickets"]) == [2, 3]
        assert body["reservation"]["status"] == "CONFIRMED"
        assert body["reservation"]["booking_source"] == "CASHIER_DESK"
        assert body["reservation"]["user_id"] is None

        db.expire_all()
        assert world.trip.available_seats == BUS_CAPACITY - 2
        reservation = db.get(Reservation, body["reservation"]["id"])
        assert reservation.booking_source == BookingSource.CASHIER_DESK
        payment = db.query(Payment).filter(Payment.reservation_id == reservation.id).one()
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.processed_by == world.caissier.id
        assert "reservation-updated" in bus.events_for(f"company-{world.company.id}")

    def test_sale_beyond_remaining_seats_conflicts(self, client, db, world):
        make_reservation(db, world.trip, world.client, seat=1)

        response = client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip, tickets=BUS_CAPACITY),
            headers=auth_headers(world.caissier),
        )

        assert response.status_code == 409
        db.expire_all()
        assert world.trip.available_seats == BUS_CAPACITY
        assert db.query(Reservation).filter(Reservation.status == ReservationStatus.CONFIRMED).count() == 0

    def test_lapsed_hold_does_not_count_against_the_desk(self, client, db, world):
        abandoned = make_reservation(db, world.trip, world.client, seat=1)
        abandoned.expires_at = utcnow() - timedelta(hours=3)
        db.commit()

        response = client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip, tickets=BUS_CAPACITY, amount="20000"),
            headers=auth_headers(world.caissier),
        )

        assert response.status_code == 201
        assert sorted(t["seat_number"] for t in response.json()["tickets"]) == list(range(1, BUS_CAPACITY + 1))

    def test_abandoned_hold_cannot_be_paid_after_its_seat_is_sold(self, client, db, world, bus):
        abandoned = make_reservation(db, world.trip, world.client, seat=1)
        abandoned.expires_at = utcnow() - timedelta(hours=3)
        db.commit()
        client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip),
            headers=auth_headers(world.caissier),
        )

        response = client.post(
            "/api/v1/payment",
            json={"reservationId": abandoned.id, "paymentMethod": "CASH"},
            headers=auth_headers(world.client),
        )

        assert response.status_code == 409
        db.expire_all()
        assert world.trip.available_seats == BUS_CAPACITY - 1

    def test_cashier_of_another_company_is_forbidden(self, client, world):
        response = client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip),
            headers=auth_headers(world.rival_caissier),
        )

        assert response.status_code == 403

    def test_clients_cannot_use_the_desk(self, client, world):
        response = client.post(
            "/api/v1/cashier/sell-ticket",
            json=sale_payload(world.trip),
            headers=auth_headers(world.client),
        )

        assert response.status_code == 401


class TestCashierDashboard:
    def test_daily_sales_sum_completed_payments(self, client, world):
        headers = auth_headers(world.caissier)
        client.post("/api/v1/cashier/sell-ticket", json=sale_payload(world.trip, tickets=2, amount="10000"), headers=headers)

        response = client.get("/api/v1/cashier/daily-sales", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["tickets_sold"] == 2
        assert body["payments"] == 1
        assert Decimal(body["revenue"]) == Decimal("10000")
        assert Decimal(body["cashier_revenue"]) == Decimal("10000")

    def test_bookable_trips_lists_company_trips_with_seats(self, client, world):
        response = client.get("/api/v1/cashier/trips", headers=auth_headers(world.caissier))

        assert response.status_code == 200
        assert [trip["id"] for trip in response.json()] == [world.trip.id]
        assert response.json()[0]["route"]["arrival_location"] == "Bobo-Dioulasso"
