"""
Bulk upload of the sales ledger and the OTT key pool from admin spreadsheets.

Uploads are all-or-nothing: any missing column or bad row rejects the whole
file and nothing is written. Row numbers in errors are spreadsheet rows
(header is row 1).

Modes:
- replace (default): the unallocated pool is swapped for the file contents.
  Claimed sales records and assigned/used keys are history and are kept.
- append: rows are only added.
"""

import logging
import os
import re

import tablib
from django.db import transaction
from django.utils.dateparse import parse_date

from inventory.models import OTTKey, SalesRecord, normalize_activation_code

logger = logging.getLogger(__name__)

MODE_REPLACE = 'replace'
MODE_APPEND = 'append'
IMPORT_MODES = (MODE_REPLACE, MODE_APPEND)

SUPPORTED_FORMATS = {
    'xlsx': 'xlsx',
    'xls': 'xls',
    'csv': 'csv',
}


class ImportValidationError(Exception):
    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or []


def _header_key(value):
    return re.sub(r'[^a-z0-9]', '', str(value or '').lower())


def _cell_text(value):
    if value is None:
        return ''
    # Spreadsheet apps store long numeric codes (IMEI) as floats
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def load_dataset(uploaded_file):
    """Parse an uploaded xlsx/xls/csv file into a tablib Dataset with headers."""
    name = getattr(uploaded_file, 'name', '') or ''
    extension = os.path.splitext(name)[1].lstrip('.').lower()
    file_format = SUPPORTED_FORMATS.get(extension)
    if not file_format:
        raise ImportValidationError('Unsupported file type. Please upload .xlsx, .xls, or .csv.')

    content = uploaded_file.read()
    if file_format == 'csv' and isinstance(content, bytes):
        content = content.decode('utf-8-sig')

    try:
        dataset = tablib.Dataset().load(content, format=file_format, headers=True)
    except Exception as e:
        logger.warning(f'Could not parse uploaded file {name}: {e}')
        raise ImportValidationError(f'Could not read {name}: the file is corrupt or not a {extension} file.')

    if not dataset.headers or dataset.height == 0:
        raise ImportValidationError('No data found in the uploaded file.')
    return dataset


class SpreadsheetImporter:
    model = None
    label = ''
    # field -> accepted header spellings (compared after _header_key)
    columns = {}
    required = ()
    # Rows in these states are allocation history and survive a replace
    pool_status = ''

    def __init__(self, mode=MODE_REPLACE):
        if mode not in IMPORT_MODES:
            raise ImportValidationError(f'Invalid import mode "{mode}". Use one of: {", ".join(IMPORT_MODES)}.')
        self.mode = mode

    def run(self, uploaded_file):
        dataset = load_dataset(uploaded_file)
        column_index = self._map_headers(dataset.headers)
        rows, errors = self._parse_rows(dataset, column_index)
        if not rows and not errors:
            errors.append('No data rows found in the uploaded file.')
        errors.extend(self._collisions(rows))
        if errors:
            raise ImportValidationError(
                f'Upload rejected: {len(errors)} problem(s) found. No records were changed.',
                details=errors,
            )

        with transaction.atomic():
            removed = 0
            if self.mode == MODE_REPLACE:
                removed, _ = self.model.objects.filter(status=self.pool_status).delete()
            created = self.model.objects.bulk_create([self.build(values) for _, values in rows])

        logger.info(
            f'{self.label} upload ({self.mode}): {len(created)} created, {removed} unallocated rows replaced'
        )
        return {'success': True, 'count': len(created), 'mode': self.mode, 'replaced': removed}

    def build(self, values):
        raise NotImplementedError

    def clean_row(self, values):
        """Hook for per-field conversion. Returns a list of error strings."""
        return []

    def _map_headers(self, headers):
        lookup = {_header_key(h): i for i, h in enumerate(headers)}
        column_index = {}
        for field, aliases in self.columns.items():
            for alias in aliases:
                if _header_key(alias) in lookup:
                    column_index[field] = lookup[_header_key(alias)]
                    break

        missing = [self.columns[field][0] for field in self.required if field not in column_index]
        if missing:
            raise ImportValidationError(
                'Missing required column headers.',
                details=[f"Missing column: '{header}'" for header in missing],
            )
        return column_index

    def _parse_rows(self, dataset, column_index):
        rows, errors = [], []
        seen = {}
        for i, row in enumerate(dataset):
            row_number = i + 2
            values = {field: _cell_text(row[idx]) for field, idx in column_index.items()}
            if not any(values.values()):
                continue  # blank line

            missing = [f"'{self.columns[field][0]}'" for field in self.required if not values.get(field)]
            if missing:
                errors.append(f'Row {row_number}: Missing required field(s): {", ".join(missing)}.')
                continue

            problems = self.clean_row(values)
            if problems:
                errors.extend(f'Row {row_number}: {problem}' for problem in problems)
                continue

            normalized = normalize_activation_code(values['activation_code'])
            if normalized in seen:
                errors.append(
                    f"Row {row_number}: Duplicate activation code '{values['activation_code']}' "
                    f'(first seen in row {seen[normalized]}).'
                )
                continue
            seen[normalized] = row_number
            rows.append((row_number, values))
        return rows, errors

    def _collisions(self, rows):
        if not rows:
            return []

        existing = self.model.objects.all()
        if self.mode == MODE_REPLACE:
            existing = existing.exclude(status=self.pool_status)

        codes = [values['activation_code'] for _, values in rows]
        taken = {
            normalize_activation_code(code): status
            for code, status in existing.filter(activation_code__in=codes).values_list('activation_code', 'status')
        }
        if self.model is SalesRecord:
            normalized = [normalize_activation_code(code) for code in codes]
            taken.update(
                existing.filter(normalized_code__in=normalized).values_list('normalized_code', 'status')
            )

        errors = []
        for row_number, values in rows:
            status = taken.get(normalize_activation_code(values['activation_code']))
            if status:
                errors.append(
                    f"Row {row_number}: Activation code '{values['activation_code']}' already exists ({status})."
                )
        return errors


class SalesRecordImporter(SpreadsheetImporter):
    model = SalesRecord
    label = 'Sales'
    columns = {
        'activation_code': [
            'Activation Code/ Serial No / IMEI Number', 'Activation Code', 'Serial No',
            'IMEI Number', 'IMEI', 'Code',
        ],
        'product': ['Product'],
        'product_sub_category': ['Product Sub Category', 'Sub Category', 'Category'],
        'sale_date': ['Sale Date', 'Date', 'Purchase Date'],
        'customer_email': ['Customer Email', 'Email'],
    }
    required = ('activation_code', 'product', 'product_sub_category')
    pool_status = SalesRecord.AVAILABLE

    def clean_row(self, values):
        raw = values.get('sale_date')
        if not raw:
            values['sale_date'] = None
            return []
        # Date cells arrive as 'YYYY-MM-DD HH:MM:SS' once stringified
        parsed = parse_date(raw[:10])
        if parsed is None:
            return [f"Invalid sale date '{raw}' (expected YYYY-MM-DD)."]
        values['sale_date'] = parsed
        return []

    def build(self, values):
        return SalesRecord(
            activation_code=values['activation_code'],
            normalized_code=normalize_activation_code(values['activation_code']),
            product=values['product'],
            product_sub_category=values['product_sub_category'],
            sale_date=values.get('sale_date'),
            customer_email=values.get('customer_email', ''),
            status=SalesRecord.AVAILABLE,
        )


class OTTKeyImporter(SpreadsheetImporter):
    model = OTTKey
    label = 'OTT keys'
    columns = {
        'activation_code': ['Activation Code', 'OTT Code', 'OTT Key', 'Key', 'Code'],
        'product': ['Product', 'Platform'],
        'product_sub_category': ['Product Sub Category', 'Sub Category', 'Category'],
    }
    required = ('activation_code', 'product', 'product_sub_category')
    pool_status = OTTKey.AVAILABLE

    def build(self, values):
        return OTTKey(
            activation_code=values['activation_code'],
            product=values['product'],
            product_sub_category=values['product_sub_category'],
            status=OTTKey.AVAILABLE,
        )


def import_sales_records(uploaded_file, mode=MODE_REPLACE):
    return SalesRecordImporter(mode).run(uploaded_file)


def import_ott_keys(uploaded_file, mode=MODE_REPLACE):
    return OTTKeyImporter(mode).run(uploaded_file)
