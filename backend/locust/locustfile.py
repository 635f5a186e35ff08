"""
Locust load tests for the ticketing API.

Scenarios:
  locust -f locustfile.py --tags contention   # Many buyers, few tickets
  locust -f locustfile.py --tags churn        # Book/cancel loops
  locust -f locustfile.py --tags browse       # Cached listing throughput
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All of the above

Newly created events stay pending until an admin approves them, so the
booking scenarios need an approved event. Either point LOCUST_EVENT_ID at
one, or set LOCUST_ADMIN_EMAIL / LOCUST_ADMIN_PASSWORD and the test_start
hook creates and approves a small event itself.

After a contention run, verify no oversell:
  SELECT e.total_tickets, e.remaining_tickets, COALESCE(SUM(b.quantity), 0)
  FROM events e LEFT JOIN bookings b ON b.event_id = e.id AND b.status = 'active'
  WHERE e.id = :id GROUP BY e.id;
remaining_tickets + sum must equal total_tickets.
"""

import os
import random
import string
from datetime import datetime, timezone, timedelta

import requests
from locust import HttpUser, task, between, tag, events

API = "/api/v1"
PASSWORD = "loadtest123"

TARGET_EVENT_ID = int(os.environ["LOCUST_EVENT_ID"]) if os.environ.get("LOCUST_EVENT_ID") else None
EVENT_IDS = []


def random_username() -> str:
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=10))


def future_date(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Create and approve a 10-ticket event when no target was given."""
    global TARGET_EVENT_ID
    if TARGET_EVENT_ID is not None:
        return

    admin_email = os.environ.get("LOCUST_ADMIN_EMAIL")
    admin_password = os.environ.get("LOCUST_ADMIN_PASSWORD")
    if not (admin_email and admin_password and environment.host):
        print("No LOCUST_EVENT_ID or admin credentials: booking scenarios will idle")
        return

    session = requests.Session()
    login = session.post(
        f"{environment.host}{API}/auth/login",
        json={"email": admin_email, "password": admin_password},
    )
    login.raise_for_status()
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    created = session.post(
        f"{environment.host}{API}/events/",
        json={
            "title": "Contention Test Event",
            "description": "10 tickets only",
            "date": future_date(),
            "location": "Load Lab",
            "price": "10.00",
            "total_tickets": 10,
        },
        headers=headers,
    )
    created.raise_for_status()
    event_id = created.json()["id"]

    session.put(
        f"{environment.host}{API}/events/{event_id}/status",
        json={"status": "approved"},
        headers=headers,
    ).raise_for_status()

    TARGET_EVENT_ID = event_id
    print(f"Created and approved event {event_id} with 10 tickets")


class AuthenticatedUser(HttpUser):
    """Registers a fresh account and logs in before running tasks."""

    abstract = True

    def on_start(self):
        username = random_username()
        email = f"{username}@loadtest.example.com"
        self.client.post(f"{API}/auth/register", json={
            "email": email,
            "username": username,
            "password": PASSWORD,
        })
        resp = self.client.post(f"{API}/auth/login", json={
            "email": email,
            "password": PASSWORD,
        })
        if resp.status_code == 200:
            self.headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        else:
            self.headers = {}


class ContentionUser(AuthenticatedUser):
    """
    Many users fight over the same small inventory.

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s
    201 and 409 are both expected; anything else is a failure.
    """

    wait_time = between(0, 0.1)

    @tag("contention")
    @task
    def book_scarce_tickets(self):
        if TARGET_EVENT_ID is None or not self.headers:
            return

        with self.client.post(
            f"{API}/bookings/",
            json={"event_id": TARGET_EVENT_ID, "quantity": random.randint(1, 2)},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ChurnUser(AuthenticatedUser):
    """
    Book then immediately cancel, so inventory keeps moving both ways.

    Run: locust -f locustfile.py --tags churn -u 50 -r 10 --run-time 60s
    """

    wait_time = between(0.05, 0.2)

    @tag("churn")
    @task
    def book_and_cancel(self):
        if TARGET_EVENT_ID is None or not self.headers:
            return

        resp = self.client.post(
            f"{API}/bookings/",
            json={"event_id": TARGET_EVENT_ID, "quantity": 1},
            headers=self.headers,
            name=f"{API}/bookings/ [churn]",
        )
        if resp.status_code != 201:
            return

        with self.client.delete(
            f"{API}/bookings/{resp.json()['id']}",
            headers=self.headers,
            name=f"{API}/bookings/{{id}}",
            catch_response=True,
        ) as cancel:
            if cancel.status_code == 200:
                cancel.success()
            else:
                cancel.failure(f"Cancel failed: {cancel.status_code}")


class BrowsingUser(HttpUser):
    """
    Read-heavy traffic against the cached listing.

    Run twice (with and without Redis) and compare latency percentiles:
      locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s
    """

    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task(10)
    def list_events(self):
        page = random.randint(1, 5)
        resp = self.client.get(
            f"{API}/events/?page={page}&page_size=20",
            name=f"{API}/events/ [list]",
        )
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("browse")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"{API}/events/{random.choice(EVENT_IDS)}", name=f"{API}/events/{{id}}")

    @tag("browse")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(AuthenticatedUser):
    """
    Bad input must produce clean 4xx responses, never 5xx.

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s
    """

    wait_time = between(0.5, 1.5)

    def _expect(self, allowed: tuple, **request_kwargs):
        with self.client.post(f"{API}/bookings/", catch_response=True, **request_kwargs) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_event(self):
        self._expect((404,), json={"event_id": 999999, "quantity": 1}, headers=self.headers)

    @tag("edge")
    @task
    def non_positive_quantity(self):
        self._expect(
            (422,),
            json={"event_id": 1, "quantity": random.choice([0, -5])},
            headers=self.headers,
        )

    @tag("edge")
    @task
    def oversized_quantity(self):
        self._expect((422,), json={"event_id": 1, "quantity": 999999}, headers=self.headers)

    @tag("edge")
    @task
    def malformed_json(self):
        self._expect((422,), data="not json at all", headers=self.headers)

    @tag("edge")
    @task
    def missing_auth(self):
        self._expect((401,), json={"event_id": 1, "quantity": 1})
