"""Tests for anonymous identity tokens and identity resolution."""

import pytest

from crossfire.debate_engine.types import IdentityKind
from crossfire.web.identity import IdentityResolver


@pytest.fixture
def resolver() -> IdentityResolver:
    return IdentityResolver("unit-test-secret")


def _flip(char: str) -> str:
    return "0" if char != "0" else "1"


@pytest.mark.unit
def test_minted_token_verifies(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()

    assert minted.token.startswith(f"{minted.id}.")
    assert resolver.verify(minted.token) == minted.id


@pytest.mark.unit
def test_minted_ids_are_unique(resolver: IdentityResolver):
    assert resolver.mint_anonymous_identity().id != resolver.mint_anonymous_identity().id


@pytest.mark.unit
def test_signature_is_deterministic(resolver: IdentityResolver):
    assert resolver.sign("abc") == resolver.sign("abc")
    assert resolver.sign("abc") != IdentityResolver("other-secret").sign("abc")


@pytest.mark.unit
def test_any_flipped_signature_character_is_rejected(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()
    identifier, signature = minted.token.rsplit(".", 1)

    for index in range(len(signature)):
        tampered = signature[:index] + _flip(signature[index]) + signature[index + 1:]
        assert resolver.verify(f"{identifier}.{tampered}") is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "token",
    ["", "no-separator-here", ".deadbeef", "abc.", "abc.short", "abc.ünicode"],
)
def test_malformed_tokens_are_rejected(resolver: IdentityResolver, token: str):
    assert resolver.verify(token) is None


@pytest.mark.unit
def test_bare_identifier_is_not_trusted(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()
    assert resolver.verify(minted.id) is None


@pytest.mark.unit
def test_token_from_another_secret_is_rejected(resolver: IdentityResolver):
    foreign = IdentityResolver("someone-elses-secret").mint_anonymous_identity()
    assert resolver.verify(foreign.token) is None


@pytest.mark.unit
def test_identifier_may_contain_separator(resolver: IdentityResolver):
    token = f"a.b.c.{resolver.sign('a.b.c')}"
    assert resolver.verify(token) == "a.b.c"


@pytest.mark.unit
def test_authenticated_subject_takes_precedence(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()

    identity = resolver.resolve_identity(authenticated_subject="user_42", cookie_token=minted.token)

    assert identity.kind is IdentityKind.REGISTERED
    assert identity.owner_identity == "user:user_42"
    assert not identity.is_anonymous


@pytest.mark.unit
def test_valid_cookie_resolves_anonymous(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()

    identity = resolver.resolve_identity(cookie_token=minted.token)

    assert identity.kind is IdentityKind.ANONYMOUS
    assert identity.id == minted.id
    assert identity.owner_identity == f"guest_{minted.id}"


@pytest.mark.unit
def test_forged_cookie_degrades_to_no_identity(resolver: IdentityResolver):
    identity = resolver.resolve_identity(cookie_token="forged-id.0000")

    assert identity.kind is IdentityKind.NONE
    assert identity.owner_identity is None


@pytest.mark.unit
def test_nothing_resolves_to_no_identity(resolver: IdentityResolver):
    assert resolver.resolve_identity().kind is IdentityKind.NONE


@pytest.mark.unit
def test_registered_subject_with_guest_prefix_stays_registered(resolver: IdentityResolver):
    minted = resolver.mint_anonymous_identity()

    registered = resolver.resolve_identity(authenticated_subject=f"guest_{minted.id}")
    anonymous = resolver.resolve_identity(cookie_token=minted.token)

    assert registered.owner_identity == f"user:guest_{minted.id}"
    assert registered.owner_identity != anonymous.owner_identity
    assert not registered.owner_identity.startswith("guest_")
