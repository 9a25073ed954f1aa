import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from inventory.importers import (
    MODE_APPEND, ImportValidationError, import_ott_keys, import_sales_records,
)
from inventory.models import OTTKey, SalesRecord


def csv_upload(text, name='upload.csv'):
    return SimpleUploadedFile(name, text.encode('utf-8'), content_type='text/csv')


SALES_CSV = (
    'Product Sub Category,Product,Activation Code/ Serial No / IMEI Number,Sale Date\n'
    'OTTplay,Smart TV 43,SN-0001,2024-05-01\n'
    'OTTplay,Smart TV 55,SN-0002,\n'
)


@pytest.mark.django_db
def test_sales_upload_creates_records():
    result = import_sales_records(csv_upload(SALES_CSV))

    assert result == {'success': True, 'count': 2, 'mode': 'replace', 'replaced': 0}
    record = SalesRecord.objects.get(activation_code='SN-0001')
    assert record.normalized_code == 'SN0001'
    assert record.sale_date.isoformat() == '2024-05-01'
    assert record.status == SalesRecord.AVAILABLE
    assert SalesRecord.objects.get(activation_code='SN-0002').sale_date is None


@pytest.mark.django_db
def test_headers_are_matched_loosely():
    text = 'product,PRODUCT SUB-CATEGORY,activation code\nTV,OTTplay,x-1\n'
    assert import_sales_records(csv_upload(text))['count'] == 1


@pytest.mark.django_db
def test_missing_column_rejects_upload():
    with pytest.raises(ImportValidationError) as exc:
        import_sales_records(csv_upload('Product,Activation Code\nTV,SN-1\n'))

    assert exc.value.message == 'Missing required column headers.'
    assert exc.value.details == ["Missing column: 'Product Sub Category'"]
    assert SalesRecord.objects.count() == 0


@pytest.mark.django_db
def test_row_errors_cite_spreadsheet_rows_and_change_nothing(make_sales_record):
    make_sales_record('KEEP-ME')
    text = (
        'Product Sub Category,Product,Activation Code,Sale Date\n'
        'OTTplay,TV,GOOD-1,\n'
        'OTTplay,,MISSING-PRODUCT,\n'
        'OTTplay,TV,good 1,\n'
        'OTTplay,TV,BAD-DATE,31/31/2024\n'
    )

    with pytest.raises(ImportValidationError) as exc:
        import_sales_records(csv_upload(text))

    details = exc.value.details
    assert len(details) == 3
    assert details[0].startswith('Row 3: Missing required field')
    assert details[1].startswith('Row 4: Duplicate activation code')
    assert details[2].startswith('Row 5: Invalid sale date')
    assert list(SalesRecord.objects.values_list('activation_code', flat=True)) == ['KEEP-ME']


@pytest.mark.django_db
def test_replace_swaps_pool_but_keeps_claimed_history(make_sales_record):
    make_sales_record('OLD-AVAILABLE')
    make_sales_record('OLD-CLAIMED', status=SalesRecord.CLAIMED, claimed_by='c@example.com')

    result = import_sales_records(csv_upload(SALES_CSV))

    assert result['replaced'] == 1
    codes = set(SalesRecord.objects.values_list('activation_code', flat=True))
    assert codes == {'OLD-CLAIMED', 'SN-0001', 'SN-0002'}


@pytest.mark.django_db
def test_replace_rejects_codes_already_claimed(make_sales_record):
    make_sales_record('sn 0001', status=SalesRecord.CLAIMED, claimed_by='c@example.com')

    with pytest.raises(ImportValidationError) as exc:
        import_sales_records(csv_upload(SALES_CSV))

    assert exc.value.details == ["Row 2: Activation code 'SN-0001' already exists (claimed)."]


@pytest.mark.django_db
def test_append_adds_and_rejects_existing(make_key):
    make_key('KEY-1')
    text = 'Activation Code,Platform,Product Sub Category\nKEY-2,OTTplay,Premium\n'

    result = import_ott_keys(csv_upload(text), mode=MODE_APPEND)

    assert result['count'] == 1
    assert OTTKey.objects.count() == 2

    with pytest.raises(ImportValidationError):
        import_ott_keys(csv_upload(text), mode=MODE_APPEND)


@pytest.mark.django_db
def test_key_replace_keeps_assigned_keys(make_key):
    make_key('POOL-1')
    make_key('GIVEN-1', status=OTTKey.ASSIGNED, assigned_email='c@example.com')
    text = 'OTT Code,Product,Product Sub Category\nPOOL-2,OTTplay,Premium\nPOOL-3,OTTplay,Premium\n'

    result = import_ott_keys(csv_upload(text))

    assert result['count'] == 2
    assert result['replaced'] == 1
    assert set(OTTKey.objects.values_list('activation_code', flat=True)) == {'GIVEN-1', 'POOL-2', 'POOL-3'}


@pytest.mark.django_db
def test_unsupported_and_empty_files():
    with pytest.raises(ImportValidationError, match='Unsupported file type'):
        import_ott_keys(SimpleUploadedFile('keys.txt', b'Activation Code\nX\n'))

    with pytest.raises(ImportValidationError):
        import_ott_keys(csv_upload('Activation Code,Product,Product Sub Category\n'))


@pytest.mark.django_db
def test_invalid_mode():
    with pytest.raises(ImportValidationError, match='Invalid import mode'):
        import_ott_keys(csv_upload(SALES_CSV), mode='merge')
