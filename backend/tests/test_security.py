from jose import jwt

from appointment_engine.config import settings
from appointment_engine.utils.security import Role, decode_actor_token


def encode(claims, secret=None):
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_decodes_roles_and_team():
    actor = decode_actor_token(encode({"sub": "10", "roles": ["staff", "bogus"], "team_id": "7"}))

    assert actor.user_id == 10
    assert actor.roles == frozenset({Role.STAFF})
    assert actor.team_id == 7
    assert actor.is_staff and not actor.is_admin
    assert actor.is_assigned_to(7)


def test_single_role_claim():
    actor = decode_actor_token(encode({"sub": "2", "role": "superadmin"}))
    assert actor.is_admin and actor.is_superadmin


def test_rejects_bad_tokens():
    assert decode_actor_token("garbage") is None
    assert decode_actor_token(encode({"sub": "1"}, secret="other-secret")) is None
    assert decode_actor_token(encode({"roles": ["admin"]})) is None
    assert decode_actor_token(encode({"sub": "not-a-number"})) is None
