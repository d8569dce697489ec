"""Tests for the WebSocket endpoint and typing-indicator relay."""
import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from sparkmatch.api.realtime import WS_UNAUTHORIZED, relay_client_event
from sparkmatch.main import app
from sparkmatch.realtime.notifier import USER_STOP_TYPING, USER_TYPING


class TestHandshake:

    @pytest.mark.parametrize("query", ["", "?token=garbage"])
    def test_rejects_missing_or_bad_token(self, query):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws{query}"):
                pass
        assert exc_info.value.code == WS_UNAUTHORIZED


class TestTypingRelay:

    @pytest.mark.asyncio
    async def test_typing_reaches_other_participant(
        self, db_session, notifier, connect, matched_pair
    ):
        alice, bob, match = matched_pair
        bob_socket = connect(bob.id)

        relayed = await relay_client_event(
            alice.id, {"event": "typing", "data": {"match_id": str(match.id)}}, notifier, db_session
        )
        await relay_client_event(
            alice.id, {"event": "stop_typing", "data": {"match_id": str(match.id)}}, notifier, db_session
        )

        assert relayed is True
        assert bob_socket.events() == [USER_TYPING, USER_STOP_TYPING]
        assert bob_socket.last(USER_TYPING) == {"match_id": str(match.id), "user_id": str(alice.id)}

    @pytest.mark.asyncio
    async def test_outsider_typing_is_ignored(
        self, db_session, make_user, notifier, connect, matched_pair
    ):
        _, bob, match = matched_pair
        eve = await make_user()
        bob_socket = connect(bob.id)

        relayed = await relay_client_event(
            eve.id, {"event": "typing", "data": {"match_id": str(match.id)}}, notifier, db_session
        )

        assert relayed is False
        assert bob_socket.frames == []

    @pytest.mark.asyncio
    async def test_inactive_match_is_ignored(
        self, db_session, match_service, notifier, connect, matched_pair
    ):
        alice, bob, match = matched_pair
        await match_service.unmatch(match.id, bob.id, db_session)
        bob_socket = connect(bob.id)

        relayed = await relay_client_event(
            alice.id, {"event": "typing", "data": {"match_id": str(match.id)}}, notifier, db_session
        )

        assert relayed is False
        assert bob_socket.frames == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "frame",
        [
            "typing",
            {"event": "dance"},
            {"event": "typing"},
            {"event": "typing", "data": {"match_id": "not-a-uuid"}},
        ],
    )
    async def test_malformed_frames_ignored(self, db_session, notifier, frame):
        assert await relay_client_event(uuid.uuid4(), frame, notifier, db_session) is False
