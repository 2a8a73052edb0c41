"""
Tests for the in-memory data service.

These tests verify the remote operations the store depends on, plus the failure,
latency and cancellation simulation the other tests lean on.
"""

import asyncio
import json

import pytest

from core.cancellation import CancellationToken, OperationCancelled
from core.data_service import DataServiceError, InMemoryDataService
from core.models import PointsDirection, Preferences, ScanHistoryEntry


class TestProfilesAndPoints:
    """Tests for profile and points operations."""

    @pytest.mark.asyncio
    async def test_fetch_profile(self, data_service: InMemoryDataService, alice_user_id: str):
        profile = await data_service.fetch_profile(alice_user_id)

        assert profile is not None
        assert profile.points == 100
        assert profile.first_name == "alice"

    @pytest.mark.asyncio
    async def test_fetch_unknown_profile(self, data_service: InMemoryDataService):
        assert await data_service.fetch_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_apply_points_delta(self, data_service: InMemoryDataService, alice_user_id: str):
        balance = await data_service.apply_points_delta(alice_user_id, 50, PointsDirection.ADD)
        assert balance == 150

        balance = await data_service.apply_points_delta(alice_user_id, 30, PointsDirection.SUBTRACT)
        assert balance == 120
        assert data_service.get_points(alice_user_id) == 120

    @pytest.mark.asyncio
    async def test_overdraw_rejected(self, data_service: InMemoryDataService, bob_user_id: str):
        with pytest.raises(DataServiceError):
            await data_service.apply_points_delta(bob_user_id, 50, PointsDirection.SUBTRACT)
        assert data_service.get_points(bob_user_id) == 20


class TestPreferencesAndScans:
    """Tests for preference and scan history operations."""

    @pytest.mark.asyncio
    async def test_persist_and_fetch_preferences(self, data_service: InMemoryDataService, bob_user_id: str):
        await data_service.persist_preferences(
            bob_user_id, Preferences(favorite_teams=["t1"], notifications_enabled=False)
        )

        remote = await data_service.fetch_preferences(bob_user_id)
        assert remote["favorite_teams"] == ["t1"]
        assert remote["notifications_enabled"] is False

    @pytest.mark.asyncio
    async def test_append_scan_is_idempotent(self, data_service: InMemoryDataService, bob_user_id: str):
        scan = ScanHistoryEntry(points=10, description="gate scan")

        await data_service.append_scan(bob_user_id, scan)
        await data_service.append_scan(bob_user_id, scan)

        history = await data_service.fetch_scan_history(bob_user_id)
        assert [s.id for s in history] == [scan.id]


class TestFailureSimulation:
    """Tests for forced failures, pausing and cancellation."""

    @pytest.mark.asyncio
    async def test_fail_next(self, data_service: InMemoryDataService, alice_user_id: str):
        data_service.fail_next("fetch_profile")

        with pytest.raises(DataServiceError):
            await data_service.fetch_profile(alice_user_id)
        assert await data_service.fetch_profile(alice_user_id) is not None

        calls = data_service.calls_to("fetch_profile")
        assert [c.succeeded for c in calls] == [False, True]

    @pytest.mark.asyncio
    async def test_fail_rate_always(self, alice_user_id: str):
        service = InMemoryDataService(fail_rate=1.0)
        service.seed_user(alice_user_id, points=5)

        with pytest.raises(DataServiceError):
            await service.fetch_preferences(alice_user_id)

    @pytest.mark.asyncio
    async def test_pause_holds_calls(self, data_service: InMemoryDataService, alice_user_id: str):
        data_service.pause()
        task = asyncio.create_task(
            data_service.apply_points_delta(alice_user_id, 10, PointsDirection.ADD)
        )
        await asyncio.sleep(0.01)

        assert not task.done()
        assert data_service.get_points(alice_user_id) == 100

        data_service.resume()
        assert await task == 110

    @pytest.mark.asyncio
    async def test_cancelled_token_rejected(self, data_service: InMemoryDataService, alice_user_id: str):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            await data_service.fetch_profile(alice_user_id, token=token)

    @pytest.mark.asyncio
    async def test_cancel_while_in_flight(self, data_service: InMemoryDataService, alice_user_id: str):
        token = CancellationToken()
        data_service.pause()
        task = asyncio.create_task(
            data_service.apply_points_delta(alice_user_id, 10, PointsDirection.ADD, token=token)
        )
        await asyncio.sleep(0)

        token.cancel()
        data_service.resume()

        with pytest.raises(OperationCancelled):
            await task
        assert data_service.get_points(alice_user_id) == 100


class TestFixtures:
    """Tests for seeding from a JSON fixture file."""

    @pytest.mark.asyncio
    async def test_load_fixtures(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps([
            {"user_id": "u1", "points": 40, "favorite_teams": ["t1"]},
            {"user_id": "u2", "points": 0},
        ]))

        service = InMemoryDataService(fixtures_path=path)

        assert service.get_points("u1") == 40
        assert (await service.fetch_preferences("u1"))["favorite_teams"] == ["t1"]
        assert await service.fetch_profile("u2") is not None

    def test_missing_fixture_file(self, tmp_path):
        service = InMemoryDataService()
        assert service.load_fixtures(tmp_path / "missing.json") == 0
