"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double-holding
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Tokens are minted locally with the server's SECRET_KEY, so run this from an
environment where booking_core is installed and configured like the server.
"""

import random
import uuid
from locust import HttpUser, task, between, tag, events

from booking_core.core.security import create_access_token

# Shared state
HOT_CONTAINER_ID = "LOAD-HOT"
HOT_UNIT_IDS = [f"Hot-A{n}" for n in range(1, 11)]
CONTAINER_IDS = [HOT_CONTAINER_ID]


def token_headers():
    token = create_access_token(data={"sub": f"load-{uuid.uuid4().hex[:12]}"})
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: import one event with 10 seats everyone will fight over."""
    print("\n" + "="*60)
    print("SETUP: Importing hot container...")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify no seat has two live holders:
      SELECT unit_id, COUNT(*) FROM ledger_entries
       WHERE container_id = 'LOAD-HOT' AND state != 'free'
       GROUP BY unit_id HAVING COUNT(*) > 1;
    Should return nothing.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = token_headers()
        with self.client.post("/api/v1/containers/",
            json={
                "id": HOT_CONTAINER_ID,
                "kind": "event",
                "title": "Concurrency Test Event",
                "layout": {"sections": [{"name": "Hot", "rows": ["A"], "columns": list(range(1, 11)), "price": 10}]},
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            # 409 once another user has imported it
            if resp.status_code in (201, 409):
                resp.success()

    @tag("concurrency")
    @task
    def reserve_hot_seats(self):
        """All users fight for the same 10 seats, 1-3 at a time."""
        unit_ids = random.sample(HOT_UNIT_IDS, random.randint(1, 3))
        with self.client.post("/api/v1/reservations/",
            json={"container_id": HOT_CONTAINER_ID, "unit_ids": unit_ids, "ttl_seconds": 5},
            headers=self.headers,
            catch_response=True,
            name="/api/v1/reservations/ [hot]"
        ) as resp:
            if resp.status_code == 201:
                resp.success()
                # Release half the holds so seats keep cycling
                if random.random() < 0.5:
                    self.client.delete(f"/api/v1/reservations/{resp.json()['id']}",
                        headers=self.headers, name="/api/v1/reservations/{id}")
            elif resp.status_code == 409:
                resp.success()  # Expected: taken or contended
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_units_cached(self):
        """Hammer the cached endpoint."""
        self.client.get(f"/api/v1/containers/{random.choice(CONTAINER_IDS)}/units",
            name="/api/v1/containers/{id}/units [cached]")

    @tag("throughput", "read")
    @task(5)
    def get_snapshot(self):
        """Live per-unit state, never cached."""
        self.client.get(f"/api/v1/containers/{random.choice(CONTAINER_IDS)}/snapshot",
            name="/api/v1/containers/{id}/snapshot")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = token_headers()

    def _expect(self, payload, expected, headers=None):
        with self.client.post("/api/v1/reservations/",
            json=payload,
            headers=self.headers if headers is None else headers,
            catch_response=True
        ) as resp:
            if resp.status_code in expected:
                resp.success()
            else:
                resp.failure(f"Expected {expected}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_container(self):
        self._expect({"container_id": "NOPE", "unit_ids": ["A1"]}, [404])

    @tag("edge")
    @task
    def unknown_unit(self):
        self._expect({"container_id": HOT_CONTAINER_ID, "unit_ids": ["Hot-Z99"]}, [404])

    @tag("edge")
    @task
    def empty_reservation(self):
        self._expect({"container_id": HOT_CONTAINER_ID, "unit_ids": []}, [422])

    @tag("edge")
    @task
    def too_many_units(self):
        """Eleven distinct ids exceed the per-reservation limit."""
        unit_ids = [f"Hot-B{n}" for n in range(1, 12)]
        self._expect({"container_id": HOT_CONTAINER_ID, "unit_ids": unit_ids}, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        """Try reserving without auth."""
        self._expect({"container_id": HOT_CONTAINER_ID, "unit_ids": ["Hot-A1"]}, [401], headers={})


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some holds, most of which are confirmed
      - Some abandoned holds left for the sweeper
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = token_headers()

    @task(50)
    def browse_containers(self):
        resp = self.client.get("/api/v1/containers/")
        if resp.status_code == 200:
            for container in resp.json():
                if container["id"] not in CONTAINER_IDS:
                    CONTAINER_IDS.append(container["id"])

    @task(20)
    def view_availability(self):
        self.client.get(f"/api/v1/containers/{random.choice(CONTAINER_IDS)}/availability",
            name="/api/v1/containers/{id}/availability")

    @task(10)
    def reserve_and_maybe_pay(self):
        container_id = random.choice(CONTAINER_IDS)
        resp = self.client.get(f"/api/v1/containers/{container_id}/snapshot",
            name="/api/v1/containers/{id}/snapshot")
        if resp.status_code != 200:
            return
        free = [u for u, state in resp.json()["units"].items() if state == "free"]
        if not free:
            return

        resp = self.client.post("/api/v1/reservations/",
            json={
                "container_id": container_id,
                "unit_ids": random.sample(free, min(len(free), random.randint(1, 3))),
                "vehicle_number": "LOAD1234",
                "ttl_seconds": 30,
            },
            headers=self.headers)
        if resp.status_code == 201 and random.random() < 0.8:
            self.client.post(f"/api/v1/reservations/{resp.json()['id']}/confirm",
                headers=self.headers, name="/api/v1/reservations/{id}/confirm")
