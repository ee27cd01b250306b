"""
Excel processing service for guest list import/export
"""

import io
import logging
import math
from typing import Dict, List, Optional, Tuple
import pandas as pd
from sqlalchemy.orm import Session

from app.core.errors import DuplicateContact
from app.schemas.guest import GuestCreate, GuestResponse
from app.schemas.seating import SeatingPlanRecord
from app.services.guest_service import GuestService

logger = logging.getLogger(__name__)

LANGUAGES = ("ru", "he")

class ExcelService:
    """Service for handling Excel operations"""

    REQUIRED_COLUMNS = ['first name', 'last name', 'phone', 'party size', 'language']
    TEMPLATE_COLUMNS = ['First Name', 'Last Name', 'Phone', 'Party Size', 'Language']

    @staticmethod
    def create_template() -> bytes:
        """Create Excel template with required columns"""
        df = pd.DataFrame(columns=ExcelService.TEMPLATE_COLUMNS)

        # Sample rows for guidance
        sample_data = [
            ['Anna', 'Levi', '+972501234567', 2, 'he'],
            ['Ivan', 'Petrov', '+79161234567', 1, 'ru'],
        ]
        for row in sample_data:
            df.loc[len(df)] = row

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guests')

        return buffer.getvalue()

    @staticmethod
    def column_mapping(df: pd.DataFrame) -> Dict[str, str]:
        """Map normalized column names to the sheet's actual headers"""
        mapping = {}
        for col in df.columns:
            normalized = str(col).lower().strip()
            if normalized in ExcelService.REQUIRED_COLUMNS:
                mapping[normalized] = col
        return mapping

    @staticmethod
    def validate_excel_structure(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate Excel file structure"""
        errors = []
        mapping = ExcelService.column_mapping(df)

        missing_columns = [col for col in ExcelService.REQUIRED_COLUMNS if col not in mapping]
        if missing_columns:
            errors.append(f"Missing required columns: {', '.join(missing_columns)}")

        if df.empty:
            errors.append("The sheet has no guest rows")

        return len(errors) == 0, errors

    @staticmethod
    def validate_data_constraints(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate row values: names, phones, party sizes and languages"""
        errors = []
        mapping = ExcelService.column_mapping(df)

        for index, row in df.iterrows():
            line = index + 2  # header is row 1
            for col in ('first name', 'last name', 'phone'):
                value = row[mapping[col]]
                if pd.isna(value) or str(value).strip() == '':
                    errors.append(f"Row {line}: {col} is required")

            party_size = pd.to_numeric(row[mapping['party size']], errors='coerce')
            if pd.isna(party_size) or not math.isfinite(party_size) or party_size != int(party_size) or party_size <= 0:
                errors.append(f"Row {line}: party size must be a positive whole number")

            language = str(row[mapping['language']]).strip().lower()
            if language not in LANGUAGES:
                errors.append(f"Row {line}: language must be one of {', '.join(LANGUAGES)}")

        # Phones must be unique within the file
        phones = df[mapping['phone']].dropna().astype(str).str.strip()
        duplicates = phones[phones.duplicated(keep=False)]
        for phone in sorted(set(duplicates)):
            errors.append(f"Duplicate phone {phone} in file ({int((phones == phone).sum())} times)")

        return len(errors) == 0, errors

    @staticmethod
    def rows_to_guests(df: pd.DataFrame) -> List[GuestCreate]:
        mapping = ExcelService.column_mapping(df)
        return [
            GuestCreate(
                first_name=str(row[mapping['first name']]).strip(),
                last_name=str(row[mapping['last name']]).strip(),
                phone=str(row[mapping['phone']]).strip(),
                party_size=int(pd.to_numeric(row[mapping['party size']])),
                language=str(row[mapping['language']]).strip().lower(),
            )
            for _, row in df.iterrows()
        ]

    @staticmethod
    def process_excel_upload(file_content: bytes, db: Session) -> Tuple[bool, List[str], int]:
        """Import guests from an uploaded sheet.

        Rows are written only after the whole file validates and none of its
        phones already belong to a guest. Guests are created one by one, so a
        phone taken by a concurrent request stops the import after the rows
        already created; the returned count says how many were kept.
        """
        try:
            # Read as text so phones keep their leading "+" and zeros
            df = pd.read_excel(io.BytesIO(file_content), dtype=str)
        except Exception as e:
            return False, [f"Error reading Excel file: {str(e)}"], 0

        df = df.dropna(how='all')

        valid_structure, structure_errors = ExcelService.validate_excel_structure(df)
        if not valid_structure:
            return False, structure_errors, 0

        valid_data, data_errors = ExcelService.validate_data_constraints(df)
        if not valid_data:
            return False, data_errors, 0

        new_guests = ExcelService.rows_to_guests(df)
        existing_phones = {guest.phone for guest in GuestService.list_guests(db)}
        clashes = [guest.phone for guest in new_guests if guest.phone in existing_phones]
        if clashes:
            return False, [f"Phone {phone} already belongs to a guest" for phone in clashes], 0

        processed_count = 0
        for guest in new_guests:
            try:
                GuestService.create_guest(db, guest)
            except DuplicateContact as e:
                return False, [e.message], processed_count
            processed_count += 1

        logger.info(f"Imported {processed_count} guests from Excel")
        return True, [], processed_count

    @staticmethod
    def export_guests(guests: List[GuestResponse], plan: Optional[SeatingPlanRecord] = None) -> bytes:
        """Export the guest list with RSVP, invite and seating columns"""
        table_by_guest = {}
        if plan is not None:
            for table in plan.tables:
                for guest_id in table.guest_ids:
                    table_by_guest.setdefault(guest_id, table.label)

        data = []
        for guest in guests:
            if guest.attending is None:
                attending = 'Pending'
            else:
                attending = 'Yes' if guest.attending else 'No'
            data.append({
                'First Name': guest.first_name,
                'Last Name': guest.last_name,
                'Phone': guest.phone,
                'Party Size': guest.party_size,
                'Language': guest.language,
                'Attending': attending,
                'Invited': 'Yes' if guest.invited else 'No',
                'Table': table_by_guest.get(guest.id, ''),
            })

        df = pd.DataFrame(data, columns=[*ExcelService.TEMPLATE_COLUMNS, 'Attending', 'Invited', 'Table'])

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guests')

        return buffer.getvalue()
