"""Tests for VM name construction and validation."""

from __future__ import annotations

import pytest

from pvedeploy.errors import ValidationError
from pvedeploy.naming import (
    name_for_profile,
    name_problems,
    parse_index,
    profile_prefix,
    vm_name,
)


def test_vm_name_plain_and_site() -> None:
    assert vm_name('axero', 'vm', 1) == 'axero-vm1'
    assert vm_name('axero', 'vm', '2', 'brussels') == 'axero-vm2-brussels'


def test_vm_name_with_prefix() -> None:
    assert vm_name('musterfirma', 'ops', 1, prefix='ntq') == 'ntq-musterfirma-ops1'


def test_profiles_resolve_prefix() -> None:
    assert name_for_profile('vm', 'acme', 'vm', 3) == 'acme-vm3'
    assert name_for_profile('orb', 'acme', 'orb', 3, 'ghent') == 'ntq-acme-orb3-ghent'
    with pytest.raises(ValidationError, match='unknown profile'):
        profile_prefix('container')


def test_parse_index() -> None:
    assert parse_index('07') == '07'
    assert parse_index(' 12 ') == '12'
    assert parse_index(0) == '0'
    for bad in ('x', '-1', '1.5', '', -3, True, '\u00b2'):
        with pytest.raises(ValidationError, match='--index must be number'):
            parse_index(bad)


def test_name_problems_collects_everything() -> None:
    problems = name_problems('', 'web2', 'one', 'bad_site')
    assert '--customer required' in problems
    assert any('--role' in p for p in problems)
    assert '--index must be number' in problems
    assert any('--site' in p for p in problems)


def test_vm_name_rejects_yaml_and_shell_characters() -> None:
    for customer in ('acme: x', 'a/b', 'a&b', '-acme', 'acme-'):
        with pytest.raises(ValidationError):
            vm_name(customer, 'vm', 1)


def test_vm_name_length_limit() -> None:
    with pytest.raises(ValidationError, match='valid DNS name'):
        vm_name('c' * 60, 'vm', 1)


def test_vm_name_keeps_zero_padded_index() -> None:
    assert vm_name('acme', 'ops', '01') == 'acme-ops01'
    assert name_for_profile('orb', 'acme', 'ops', '007', 'ghent') == 'ntq-acme-ops007-ghent'
