"""Hypothesis strategies for property testing.

Provides reusable composite strategies for generating role names and
grant sets that match the role subsystem's data contracts.
"""

from hypothesis import strategies as st

from src.lambdas.shared.auth.enums import ROLE_ORDER
from src.lambdas.shared.auth.registry import LEGACY_ALIASES
from src.lambdas.shared.models.role_grant import RoleGrant

PROPERTY_USER_ID = "6f1c2a1e-8a44-4c1b-9b55-0d6d8f0b1a11"

known_names = st.sampled_from([r.value for r in ROLE_ORDER] + list(LEGACY_ALIASES))


@st.composite
def role_strings(draw):
    """Known names with random case and padding, or arbitrary text."""
    if draw(st.booleans()):
        name = draw(known_names)
        name = "".join(
            c.upper() if draw(st.booleans()) else c for c in name
        )
        pad = draw(st.sampled_from(["", " ", "\t", "  "]))
        return f"{pad}{name}{pad}"
    return draw(st.text(max_size=20))


@st.composite
def grant_sets(draw, user_id=PROPERTY_USER_ID):
    """Zero or one grant per role, each randomly active and/or test-only."""
    grants = []
    for role in draw(st.sets(st.sampled_from(ROLE_ORDER))):
        grants.append(
            RoleGrant(
                user_id=user_id,
                role=role,
                active=draw(st.booleans()),
                is_test_grant=draw(st.booleans()),
            )
        )
    return grants
