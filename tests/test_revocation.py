"""
Tests for disabling factors, recovery and the organization policy.
"""
import pytest

from conftest import PASSWORD, events_of, totp_code
from twofactor.auth.enrollment import EnrollmentFlow
from twofactor.auth.exceptions import IdentityVerificationFailed, MismatchedKey
from twofactor.auth.models import (
    EventType,
    Membership,
    MembershipRole,
    MembershipStatus,
    Organization,
    TwoFactor,
    TwoFactorType,
)
from twofactor.auth.revocation import RevocationFlow
from twofactor.auth.totp_service import generate_totp_secret

AUTHENTICATOR = TwoFactorType.AUTHENTICATOR


@pytest.fixture
def revocation(db, settings):
    return RevocationFlow(db, settings)


@pytest.fixture
def secret():
    return generate_totp_secret()


@pytest.fixture
def enrolled(db, settings, clock, user, secret):
    EnrollmentFlow(db, settings, clock).activate(user, secret, totp_code(secret, clock.now))
    return secret


@pytest.fixture
def make_membership(db, user):
    def _make_membership(require_two_factor=True, role=MembershipRole.USER,
                         status=MembershipStatus.CONFIRMED, name="Acme"):
        org = Organization(name=name, require_two_factor=require_two_factor)
        db.add(org)
        db.flush()
        membership = Membership(user_id=user.id, org_id=org.id, atype=role.value, status=status)
        db.add(membership)
        db.commit()
        return membership
    return _make_membership


class TestDisable:

    def test_missing_factor_is_noop(self, db, revocation, user):
        assert revocation.disable(user, AUTHENTICATOR, "ANYTHING") is False
        assert events_of(db, EventType.USER_DISABLED_2FA) == []

    def test_mismatched_key_keeps_factor(self, db, revocation, user, enrolled):
        with pytest.raises(MismatchedKey):
            revocation.disable(user, AUTHENTICATOR, generate_totp_secret())

        assert db.query(TwoFactor).filter_by(user_id=user.id).count() == 1
        assert events_of(db, EventType.USER_DISABLED_2FA) == []

    def test_key_must_match_exactly(self, db, revocation, user, enrolled):
        with pytest.raises(MismatchedKey):
            revocation.disable(user, AUTHENTICATOR, enrolled.lower())

        assert db.query(TwoFactor).count() == 1

    def test_matching_key_removes_factor(self, db, revocation, user, enrolled):
        assert revocation.disable(user, AUTHENTICATOR, enrolled, ip="10.0.0.2") is True

        assert db.query(TwoFactor).count() == 0
        events = events_of(db, EventType.USER_DISABLED_2FA)
        assert len(events) == 1
        assert events[0].ip_address == "10.0.0.2"

    def test_other_kind_is_untouched(self, db, revocation, user, enrolled):
        assert revocation.disable(user, TwoFactorType.EMAIL, enrolled) is False
        assert db.query(TwoFactor).count() == 1


class TestPolicy:

    def test_member_revoked_when_last_factor_removed(self, db, revocation, user, enrolled, make_membership):
        membership = make_membership()

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(membership)
        assert membership.status == MembershipStatus.REVOKED
        events = events_of(db, EventType.ORGANIZATION_USER_REVOKED)
        assert len(events) == 1
        assert events[0].membership_id == membership.id
        assert events[0].act_user_id == user.id

    def test_admins_and_owners_exempt(self, db, revocation, user, enrolled, make_membership):
        admin = make_membership(role=MembershipRole.ADMIN, name="Admins")
        owner = make_membership(role=MembershipRole.OWNER, name="Owners")

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(admin)
        db.refresh(owner)
        assert admin.status == MembershipStatus.CONFIRMED
        assert owner.status == MembershipStatus.CONFIRMED

    def test_manager_revoked(self, db, revocation, user, enrolled, make_membership):
        manager = make_membership(role=MembershipRole.MANAGER)

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(manager)
        assert manager.status == MembershipStatus.REVOKED

    def test_orgs_without_requirement_untouched(self, db, revocation, user, enrolled, make_membership):
        membership = make_membership(require_two_factor=False)

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(membership)
        assert membership.status == MembershipStatus.CONFIRMED

    def test_invited_members_untouched(self, db, revocation, user, enrolled, make_membership):
        membership = make_membership(status=MembershipStatus.INVITED)

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(membership)
        assert membership.status == MembershipStatus.INVITED

    def test_not_applied_while_other_factors_remain(self, db, revocation, user, enrolled, make_membership):
        db.add(TwoFactor(user_id=user.id, atype=int(TwoFactorType.WEBAUTHN), enabled=True, data="{}"))
        db.commit()
        membership = make_membership()

        revocation.disable(user, AUTHENTICATOR, enrolled)

        db.refresh(membership)
        assert membership.status == MembershipStatus.CONFIRMED

    def test_mail_sent_when_enabled(self, db, settings, user, enrolled, make_membership, monkeypatch):
        sent = []
        monkeypatch.setattr(
            "twofactor.services.policy.send_2fa_removed_from_org",
            lambda path, email, org_name: sent.append((email, org_name)),
        )
        settings.mail_enabled = True
        make_membership(name="Acme")

        RevocationFlow(db, settings).disable(user, AUTHENTICATOR, enrolled)

        assert sent == [("alice@example.com", "Acme")]


class TestRecover:

    def test_recovery_code_removes_all_factors(self, db, revocation, user, enrolled, make_membership):
        db.add(TwoFactor(user_id=user.id, atype=int(TwoFactorType.WEBAUTHN), enabled=True, data="{}"))
        db.commit()
        membership = make_membership()

        revocation.recover(user.email, PASSWORD, user.totp_recover.lower())

        db.refresh(user)
        db.refresh(membership)
        assert db.query(TwoFactor).count() == 0
        assert user.totp_recover is None
        assert membership.status == MembershipStatus.REVOKED
        assert len(events_of(db, EventType.USER_RECOVERED_2FA)) == 1

    def test_wrong_recovery_code(self, db, revocation, user, enrolled):
        with pytest.raises(IdentityVerificationFailed, match="Recovery code is incorrect"):
            revocation.recover(user.email, PASSWORD, "A" * 32)

        assert db.query(TwoFactor).count() == 1

    def test_wrong_password(self, db, revocation, user, enrolled):
        with pytest.raises(IdentityVerificationFailed, match="Username or password is incorrect"):
            revocation.recover(user.email, "wrong", user.totp_recover)

    def test_unknown_email(self, revocation):
        with pytest.raises(IdentityVerificationFailed):
            revocation.recover("nobody@example.com", PASSWORD, "A" * 32)

    def test_user_without_recovery_code(self, revocation, user):
        with pytest.raises(IdentityVerificationFailed):
            revocation.recover(user.email, PASSWORD, "")
