import pytest

from inventory.matcher import ClaimMatcher
from inventory.models import SalesRecord, normalize_activation_code


def test_normalize_strips_whitespace_hyphens_and_case():
    assert normalize_activation_code('  ab-12 cd\t34 ') == 'AB12CD34'
    assert normalize_activation_code(None) == ''
    assert normalize_activation_code(8675309) == '8675309'


@pytest.mark.django_db
def test_save_stores_normalized_code(make_sales_record):
    record = make_sales_record('sn-001 x')
    assert record.normalized_code == 'SN001X'


@pytest.mark.django_db
@pytest.mark.parametrize('typed', ['SN-ABC-123', 'sn-abc-123', 'snabc123', ' SN ABC 123 '])
def test_match_finds_record_regardless_of_formatting(make_sales_record, typed):
    record = make_sales_record('SN-ABC-123')
    assert ClaimMatcher().match(typed).pk == record.pk


@pytest.mark.django_db
def test_exact_match_wins_over_normalized(make_sales_record):
    exact = make_sales_record('abc123', product='Exact')
    make_sales_record('ABC-123', product='Normalized')
    assert ClaimMatcher().match('abc123').pk == exact.pk


@pytest.mark.django_db
def test_legacy_rows_without_normalized_code_are_scanned(make_sales_record):
    record = make_sales_record('LEG-0042')
    SalesRecord.objects.filter(pk=record.pk).update(normalized_code='')
    assert ClaimMatcher().match('leg 0042').pk == record.pk


@pytest.mark.django_db
def test_unknown_or_blank_code_returns_none(make_sales_record):
    make_sales_record('KNOWN-1')
    matcher = ClaimMatcher()
    assert matcher.match('UNKNOWN-1') is None
    assert matcher.match('   ') is None
    assert matcher.match(None) is None


@pytest.mark.django_db
def test_is_already_claimed(make_sales_record):
    matcher = ClaimMatcher()
    assert not matcher.is_already_claimed(make_sales_record())
    claimed = make_sales_record(status=SalesRecord.CLAIMED, claimed_by='someone@example.com')
    assert matcher.is_already_claimed(claimed)


@pytest.mark.django_db
def test_match_does_not_write(make_sales_record):
    record = make_sales_record('RO-1')
    before = record.updated_at
    ClaimMatcher().match('ro-1')
    record.refresh_from_db()
    assert record.updated_at == before
    assert record.status == SalesRecord.AVAILABLE
