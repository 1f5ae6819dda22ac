"""VM naming authority: ``[<prefix>-]<customer>-<role><index>[-<site>]``."""

from __future__ import annotations

import re

from .errors import ValidationError

PROFILE_PREFIXES = {
    'vm': '',
    'orb': 'ntq',
}
PROFILE_DEFAULT_ROLES = {
    'vm': 'vm',
    'orb': 'orb',
}

MAX_NAME_LEN = 63

_COMPONENT_RE = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$')
_ROLE_RE = re.compile(r'^[A-Za-z](?:[A-Za-z0-9-]*[A-Za-z])?$')
_DNS_LABEL_RE = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$')


def profile_prefix(profile: str) -> str:
    try:
        return PROFILE_PREFIXES[profile]
    except KeyError:
        raise ValidationError(
            f'unknown profile {profile!r}; expected one of: '
            f'{", ".join(sorted(PROFILE_PREFIXES))}'
        ) from None


def parse_index(index: int | str) -> str:
    """Return the index digits as they appear in the name (``01`` stays ``01``)."""
    if isinstance(index, bool):
        raise ValidationError('--index must be number')
    if isinstance(index, int):
        if index < 0:
            raise ValidationError('--index must be number')
        return str(index)
    text = str(index).strip()
    if not text.isascii() or not text.isdigit():
        raise ValidationError('--index must be number')
    return text


def name_problems(
    customer: str,
    role: str,
    index: int | str,
    site: str = '',
    *,
    prefix: str = '',
) -> list[str]:
    """Collect every naming problem instead of stopping at the first."""
    problems: list[str] = []
    customer = (customer or '').strip()
    if not customer:
        problems.append('--customer required')
    elif not _COMPONENT_RE.match(customer):
        problems.append(
            f'--customer {customer!r} may only contain letters, digits and inner hyphens'
        )
    role = (role or '').strip()
    # A role ending in a digit would run into the index.
    if not role:
        problems.append('--role must not be empty')
    elif not _ROLE_RE.match(role):
        problems.append(
            f'--role {role!r} must start and end with a letter and contain only letters, digits and hyphens'
        )
    try:
        parse_index(index)
    except ValidationError as ex:
        problems.extend(ex.problems)
    site = (site or '').strip()
    if site and not _COMPONENT_RE.match(site):
        problems.append(
            f'--site {site!r} may only contain letters, digits and inner hyphens'
        )
    if prefix and not _COMPONENT_RE.match(prefix):
        problems.append(f'name prefix {prefix!r} is not a valid name component')
    return problems


def vm_name(
    customer: str,
    role: str,
    index: int | str,
    site: str = '',
    *,
    prefix: str = '',
) -> str:
    problems = name_problems(customer, role, index, site, prefix=prefix)
    if problems:
        raise ValidationError(problems)
    parts = [customer.strip(), f'{role.strip()}{parse_index(index)}']
    if prefix:
        parts.insert(0, prefix)
    if site and site.strip():
        parts.append(site.strip())
    name = '-'.join(parts)
    if len(name) > MAX_NAME_LEN or not _DNS_LABEL_RE.match(name):
        raise ValidationError(
            f'VM name {name!r} is not a valid DNS name (max {MAX_NAME_LEN} characters)'
        )
    return name


def name_for_profile(
    profile: str, customer: str, role: str, index: int | str, site: str = ''
) -> str:
    return vm_name(
        customer, role, index, site, prefix=profile_prefix(profile)
    )
