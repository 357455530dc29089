import pytest

from otto.core import SignatureVerificationException
from otto.webhook.application import compute_signature, verify_signature

SECRET = "s3cr3t"
BODY = b'{"zen": "Keep it logically awesome."}'


def test_valid_signature_passes():
    verify_signature(SECRET, BODY, compute_signature(SECRET, BODY))


@pytest.mark.parametrize(
    "secret,signature",
    [
        (None, compute_signature(SECRET, BODY)),
        ("", compute_signature(SECRET, BODY)),
        (SECRET, None),
        (SECRET, ""),
        (SECRET, compute_signature(SECRET, BODY).replace("sha256=", "sha1=")),
        (SECRET, "sha256=not-hex"),
        (SECRET, compute_signature("other", BODY)),
        (SECRET, compute_signature(SECRET, BODY + b" ")),
        (SECRET, compute_signature(SECRET, BODY)[:-2]),
    ],
)
def test_rejected_signatures(secret, signature):
    with pytest.raises(SignatureVerificationException):
        verify_signature(secret, BODY, signature)
