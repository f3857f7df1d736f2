"""
Tests for claim decoding and referral token signatures.
"""
import jwt
import pytest
from datetime import datetime, timedelta

from growthkit.services.claims import (
    InvalidClaim,
    InvitationClaim,
    ReferralTokenClaim,
    SignatureVerifier,
    decode_claim,
    signature_verifier,
)
from growthkit.utils.exceptions import ValidationError


class TestDecodeClaim:

    def test_no_claim(self):
        assert decode_claim(None) is None

    def test_invitation_code(self):
        assert decode_claim('INV-AB12CD') == InvitationClaim('INV-AB12CD')

    def test_invitation_code_is_normalized(self):
        assert decode_claim('  inv-ab12cd ') == InvitationClaim('INV-AB12CD')

    def test_ambiguous_characters_are_not_invitation_codes(self):
        # 0, O and I are not in the invitation alphabet
        assert isinstance(decode_claim('INV-0OI123'), ReferralTokenClaim)

    def test_anything_else_is_a_referral_token(self):
        assert decode_claim('eyJhbGciOi.payload.sig') == ReferralTokenClaim('eyJhbGciOi.payload.sig')

    def test_blank_claim_is_invalid_not_an_error(self):
        assert decode_claim('   ') == InvalidClaim('empty')

    @pytest.mark.parametrize('raw', [123, ['INV-AB12CD'], {'code': 'x'}])
    def test_non_string_claim_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            decode_claim(raw)
        assert exc.value.code == 'INVALID_CLAIM'

    def test_oversized_claim_rejected(self):
        with pytest.raises(ValidationError):
            decode_claim('x' * 5000)


class TestSignatureVerifier:

    def test_issue_and_verify(self, app):
        token = signature_verifier.issue('GROWTH-ABC123', 7, 300)
        payload = signature_verifier.verify(token)

        assert payload.referral_code == 'GROWTH-ABC123'
        assert payload.app_id == 7
        assert payload.expires_at > datetime.utcnow()

    def test_expired_token(self, app):
        token = signature_verifier.issue('GROWTH-ABC123', 7, -60)
        assert signature_verifier.verify(token) is None

    def test_token_signed_with_other_secret(self, app):
        forged = SignatureVerifier(secret='not-the-real-secret-0123456789abcdef').issue('GROWTH-ABC123', 7, 300)
        assert signature_verifier.verify(forged) is None

    def test_token_without_referral_type(self, app):
        token = jwt.encode(
            {'referral_code': 'GROWTH-ABC123', 'app_id': 7, 'exp': datetime.utcnow() + timedelta(minutes=5)},
            app.config['REFERRAL_TOKEN_SECRET'],
            algorithm='HS256',
        )
        assert signature_verifier.verify(token) is None

    def test_garbage_token(self, app):
        assert signature_verifier.verify('not-a-jwt') is None
        assert signature_verifier.verify('') is None
