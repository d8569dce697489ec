"""Tests for geo helpers and access tokens."""
import time
import uuid

import pytest

from sparkmatch.config import get_settings
from sparkmatch.errors import AuthenticationError
from sparkmatch.utils.geo import bounding_box, haversine_km
from sparkmatch.utils.tokens import get_fernet, issue_token, read_token


class TestHaversine:

    def test_same_point_is_zero(self):
        assert haversine_km(2.35, 48.85, 2.35, 48.85) == pytest.approx(0.0)

    def test_paris_to_london(self):
        distance = haversine_km(2.3522, 48.8566, -0.1276, 51.5072)
        assert distance == pytest.approx(344, abs=3)

    def test_symmetric(self):
        a = haversine_km(10.0, 20.0, -30.0, -40.0)
        b = haversine_km(-30.0, -40.0, 10.0, 20.0)
        assert a == pytest.approx(b)


class TestBoundingBox:

    def test_box_contains_centre_and_radius(self):
        min_lon, min_lat, max_lon, max_lat = bounding_box(2.35, 48.85, 50)
        assert min_lon < 2.35 < max_lon
        assert min_lat < 48.85 < max_lat
        # The box edges sit at least ``radius`` away from the centre.
        assert haversine_km(2.35, 48.85, 2.35, max_lat) >= 49.9
        assert haversine_km(2.35, 48.85, max_lon, 48.85) >= 49.9

    def test_antimeridian_disables_box(self):
        assert bounding_box(179.9, 0.0, 50) is None

    def test_pole_disables_box(self):
        assert bounding_box(0.0, 89.9, 50) is None


class TestTokens:

    def test_round_trip(self):
        user_id = uuid.uuid4()
        assert read_token(issue_token(user_id)) == user_id

    def test_tampered_token_rejected(self):
        token = issue_token(uuid.uuid4())
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")
        with pytest.raises(AuthenticationError):
            read_token(tampered)

    def test_garbage_rejected(self):
        with pytest.raises(AuthenticationError):
            read_token("not-a-token")

    def test_expired_token_rejected(self):
        ttl = get_settings().TOKEN_TTL_SECONDS
        issued = int(time.time()) - ttl - 60
        token = get_fernet().encrypt_at_time(str(uuid.uuid4()).encode(), issued).decode()
        with pytest.raises(AuthenticationError):
            read_token(token)

    def test_non_uuid_payload_rejected(self):
        token = get_fernet().encrypt(b"admin").decode()
        with pytest.raises(AuthenticationError):
            read_token(token)
