"""
Locust Load Test Suite

Requires a PUBLISHED event and seeded customer rows. Tokens are minted
locally with the shared SECRET_KEY, so no auth service is needed.

  LOAD_EVENT_ID=1 LOAD_USER_IDS=1-500 locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags contention   # Many users, same seats
  locust -f locustfile.py --tags checkout     # Hold -> book -> confirm
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import uuid
from locust import HttpUser, task, between, tag, events

from boxoffice.core.security import create_access_token

EVENT_ID = int(os.getenv("LOAD_EVENT_ID", "1"))
_low, _high = os.getenv("LOAD_USER_IDS", "1-500").split("-")
USER_IDS = list(range(int(_low), int(_high) + 1))

# Seat ids every ContentionUser fights over, filled on test start
HOT_SEATS: list[int] = []


def auth_headers() -> dict:
    token = create_access_token({"sub": str(random.choice(USER_IDS)), "role": "CUSTOMER"})
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: event {EVENT_ID}, {len(USER_IDS)} users")
    print("="*60)


class SeatPicker(HttpUser):
    abstract = True

    def available_seats(self) -> list[int]:
        resp = self.client.get(f"/api/v1/events/{EVENT_ID}/seats", name="/api/v1/events/{id}/seats")
        if resp.status_code != 200:
            return []
        return [s["id"] for s in resp.json()["seats"] if s["status"] == "AVAILABLE"]


class ContentionUser(SeatPicker):
    """
    TEST 1: Contention - every user tries to hold the same 4 seats

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify no seat is held or booked twice:
      SELECT seat_id, COUNT(*) FROM booking_items
      WHERE released_at IS NULL GROUP BY seat_id HAVING COUNT(*) > 1;
    Should return no rows, and events.available_seats should equal
      SELECT COUNT(*) FROM seats WHERE event_id = X AND status = 'AVAILABLE';
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = auth_headers()
        if not HOT_SEATS:
            HOT_SEATS.extend(self.available_seats()[:4])

    @tag("contention")
    @task
    def hold_hot_seats(self):
        if not HOT_SEATS:
            return

        with self.client.post("/api/v1/holds/",
            json={"event_id": EVENT_ID, "seat_ids": HOT_SEATS},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
                # Put them back so the fight continues
                self.client.post("/api/v1/holds/release",
                    json={"seat_ids": HOT_SEATS}, headers=self.headers)
            elif resp.status_code in (400, 409):
                resp.success()  # Expected: lost the race or at the limit
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class CheckoutUser(SeatPicker):
    """
    TEST 2: Full checkout flow

    Run: locust -f locustfile.py --tags checkout -u 200 -r 20 --run-time 120s

    Browse the seat map, hold 1-4 random seats, create a pending booking,
    confirm it with a fake payment. Some users walk away after holding,
    leaving work for the expiry reaper.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = auth_headers()

    @tag("checkout", "read")
    @task(10)
    def browse_seat_map(self):
        self.available_seats()

    @tag("checkout")
    @task(3)
    def checkout(self):
        seats = self.available_seats()
        if not seats:
            return
        picked = random.sample(seats, min(len(seats), random.randint(1, 4)))

        resp = self.client.post("/api/v1/holds/",
            json={"event_id": EVENT_ID, "seat_ids": picked}, headers=self.headers)
        if resp.status_code != 201:
            return

        if random.random() < 0.2:
            return  # Abandoned cart

        resp = self.client.post("/api/v1/bookings/",
            json={"event_id": EVENT_ID, "seat_ids": picked}, headers=self.headers)
        if resp.status_code != 201:
            return

        booking_id = resp.json()["id"]
        self.client.post(f"/api/v1/bookings/{booking_id}/confirm",
            json={"payment_id": f"pay_{uuid.uuid4().hex[:16]}", "payment_method": "card"},
            headers=self.headers,
            name="/api/v1/bookings/{id}/confirm")

    @tag("checkout")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = auth_headers()

    def expect(self, path, body, codes, headers=None):
        with self.client.post(path, json=body,
            headers=self.headers if headers is None else headers,
            catch_response=True
        ) as resp:
            if resp.status_code in codes:
                resp.success()
            else:
                resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self.expect("/api/v1/holds/", {"event_id": 999999, "seat_ids": [1]}, [404])

    @tag("edge")
    @task
    def empty_seat_list(self):
        self.expect("/api/v1/holds/", {"event_id": EVENT_ID, "seat_ids": []}, [400, 422])

    @tag("edge")
    @task
    def too_many_seats(self):
        self.expect("/api/v1/holds/", {"event_id": EVENT_ID, "seat_ids": list(range(1, 50))}, [400])

    @tag("edge")
    @task
    def duplicate_seats(self):
        self.expect("/api/v1/holds/", {"event_id": EVENT_ID, "seat_ids": [1, 1]}, [400])

    @tag("edge")
    @task
    def book_unheld_seats(self):
        self.expect("/api/v1/bookings/", {"event_id": EVENT_ID, "seat_ids": [1]}, [400])

    @tag("edge")
    @task
    def missing_auth(self):
        self.expect("/api/v1/holds/", {"event_id": EVENT_ID, "seat_ids": [1]}, [401], headers={})
