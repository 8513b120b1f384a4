"""Canonical identifiers for direct conversations."""

from __future__ import annotations

from utils.errors import ValidationError

# Control character; identities containing control characters are rejected on join.
PAIR_SEPARATOR = "\x1f"


def canonical_pair(identity_a: str, identity_b: str) -> str:
	"""Return the conversation id shared by `identity_a` and `identity_b`.

	The result does not depend on argument order, so both participants
	derive the same id whoever opens the conversation first.
	"""
	for identity in (identity_a, identity_b):
		if not identity:
			raise ValidationError("Direct conversations need two non-empty identities.")
		if PAIR_SEPARATOR in identity:
			raise ValidationError(f"Identity {identity!r} contains a reserved character.")
	first, second = sorted((identity_a, identity_b))
	return f"{first}{PAIR_SEPARATOR}{second}"
