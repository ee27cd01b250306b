"""
Tests for guest list Excel import and export
"""

import pytest
import pandas as pd
import io
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base
from app.core.errors import DuplicateContact
from app.models import Guest
from app.schemas.guest import GuestCreate
from app.schemas.seating import TableCreate
from app.services.excel_service import ExcelService
from app.services.guest_service import GuestService
from app.services.seating_service import SeatingService

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

def create_test_excel(data):
    """Helper function to create Excel bytes from data"""
    df = pd.DataFrame(data)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, index=False)
    return buffer.getvalue()

def valid_rows():
    return {
        'First Name': ['Anna', 'Ivan', 'Dana'],
        'Last Name': ['Levi', 'Petrov', 'Cohen'],
        'Phone': ['+972501234567', '+79161234567', '0521234567'],
        'Party Size': [2, 1, 4],
        'Language': ['he', 'ru', 'HE'],
    }

def test_validate_excel_structure_valid():
    """Test Excel structure validation with valid columns"""
    df = pd.DataFrame(valid_rows())

    valid, errors = ExcelService.validate_excel_structure(df)
    assert valid
    assert len(errors) == 0

def test_validate_excel_structure_missing_columns():
    """Test Excel structure validation with missing columns"""
    data = {
        'First Name': ['Anna'],
        'Phone': ['+972501234567'],
        # Missing Last Name, Party Size and Language
    }
    df = pd.DataFrame(data)

    valid, errors = ExcelService.validate_excel_structure(df)
    assert not valid
    assert 'missing required columns' in errors[0].lower()
    assert 'party size' in errors[0]

def test_validate_excel_structure_case_insensitive():
    """Test Excel structure validation with different cases"""
    data = {
        'FIRST NAME': ['Anna'],
        'last name': ['Levi'],
        ' Phone ': ['+972501234567'],
        'Party size': [2],
        'LANGUAGE': ['he'],
    }
    df = pd.DataFrame(data)

    valid, errors = ExcelService.validate_excel_structure(df)
    assert valid
    assert len(errors) == 0

def test_validate_excel_structure_empty_sheet():
    df = pd.DataFrame(columns=ExcelService.TEMPLATE_COLUMNS)

    valid, errors = ExcelService.validate_excel_structure(df)
    assert not valid
    assert 'no guest rows' in errors[0]

def test_validate_data_constraints_ok():
    df = pd.DataFrame(valid_rows())

    valid, errors = ExcelService.validate_data_constraints(df)
    assert valid
    assert len(errors) == 0

def test_validate_data_constraints_bad_values():
    """Blank names, bad party sizes and unknown languages are reported per row"""
    data = {
        'First Name': ['', 'Ivan', 'Dana'],
        'Last Name': ['Levi', 'Petrov', 'Cohen'],
        'Phone': ['+972501234567', '+79161234567', '0521234567'],
        'Party Size': [2, 0, 1.5],
        'Language': ['he', 'ru', 'en'],
    }
    df = pd.DataFrame(data)

    valid, errors = ExcelService.validate_data_constraints(df)
    assert not valid
    assert "Row 2: first name is required" in errors
    assert "Row 3: party size must be a positive whole number" in errors
    assert "Row 4: party size must be a positive whole number" in errors
    assert any(error.startswith("Row 4: language") for error in errors)

def test_validate_data_constraints_non_finite_party_size():
    """Overflowing or infinite party sizes are row errors"""
    data = valid_rows()
    data['Party Size'] = ['1e400', 'inf', '2']
    df = pd.DataFrame(data)

    valid, errors = ExcelService.validate_data_constraints(df)
    assert not valid
    assert errors == [
        "Row 2: party size must be a positive whole number",
        "Row 3: party size must be a positive whole number",
    ]

def test_process_excel_upload_overflowing_party_size(db_session):
    data = valid_rows()
    data['Party Size'] = ['1e400', '1', '2']

    success, errors, count = ExcelService.process_excel_upload(create_test_excel(data), db_session)

    assert not success
    assert errors == ["Row 2: party size must be a positive whole number"]
    assert count == 0
    assert db_session.query(Guest).count() == 0

def test_validate_data_constraints_duplicate_phones():
    """Test validation of phones repeated within the file"""
    data = valid_rows()
    data['Phone'] = ['+972501234567', '+972501234567', '0521234567']
    df = pd.DataFrame(data)

    valid, errors = ExcelService.validate_data_constraints(df)
    assert not valid
    assert errors == ["Duplicate phone +972501234567 in file (2 times)"]

def test_process_excel_upload_success(db_session):
    """Test successful Excel upload processing"""
    excel_bytes = create_test_excel(valid_rows())

    success, errors, count = ExcelService.process_excel_upload(excel_bytes, db_session)

    assert success
    assert len(errors) == 0
    assert count == 3

    # Verify database
    guests = {guest.phone: guest for guest in db_session.query(Guest).all()}
    assert len(guests) == 3
    assert guests['0521234567'].language == 'he'
    assert guests['+972501234567'].party_size == 2

def test_process_excel_upload_validation_failure(db_session):
    """Test Excel upload with validation errors"""
    data = valid_rows()
    data['Language'] = ['he', 'ru', 'fr']
    excel_bytes = create_test_excel(data)

    success, errors, count = ExcelService.process_excel_upload(excel_bytes, db_session)

    assert not success
    assert len(errors) > 0
    assert count == 0

    # Verify no data was inserted
    assert db_session.query(Guest).count() == 0

def test_process_excel_upload_existing_phone(db_session):
    """Nothing is imported when a phone already belongs to a guest"""
    GuestService.create_guest(db_session, GuestCreate(
        first_name='Ivan', last_name='Petrov', phone='+79161234567', language='ru'
    ))

    success, errors, count = ExcelService.process_excel_upload(create_test_excel(valid_rows()), db_session)

    assert not success
    assert errors == ["Phone +79161234567 already belongs to a guest"]
    assert count == 0
    assert db_session.query(Guest).count() == 1

def test_process_excel_upload_unreadable_file(db_session):
    success, errors, count = ExcelService.process_excel_upload(b"not an excel file", db_session)

    assert not success
    assert errors[0].startswith("Error reading Excel file")
    assert count == 0

def test_create_template():
    """Test Excel template creation"""
    template_bytes = ExcelService.create_template()

    assert template_bytes is not None
    assert len(template_bytes) > 0

    # The template itself passes validation
    df = pd.read_excel(io.BytesIO(template_bytes), dtype=str)
    for col in ExcelService.TEMPLATE_COLUMNS:
        assert col in df.columns
    assert ExcelService.validate_data_constraints(df)[0]

def test_export_guests(db_session):
    """Test exporting the guest list with seating"""
    anna = GuestService.create_guest(db_session, GuestCreate(
        first_name='Anna', last_name='Levi', phone='+972501234567', party_size=2, language='he'
    ))
    GuestService.create_guest(db_session, GuestCreate(
        first_name='Ivan', last_name='Petrov', phone='+79161234567', language='ru'
    ))
    GuestService.mark_invited(db_session, anna.id)
    plan = SeatingService.add_table(db_session, TableCreate(label='Family'))
    SeatingService.assign_guest(db_session, plan.tables[0].id, anna.id)

    excel_bytes = ExcelService.export_guests(
        GuestService.list_guests(db_session), SeatingService.load_plan(db_session)
    )

    df = pd.read_excel(io.BytesIO(excel_bytes), dtype=str).fillna('')
    assert len(df) == 2
    rows = {row['First Name']: row for _, row in df.iterrows()}
    assert rows['Anna']['Table'] == 'Family'
    assert rows['Anna']['Invited'] == 'Yes'
    assert rows['Anna']['Attending'] == 'Pending'
    assert rows['Ivan']['Table'] == ''
    assert rows['Ivan']['Invited'] == 'No'

def test_process_excel_upload_phone_taken_midway(db_session, monkeypatch):
    """A phone claimed between validation and insert keeps the rows already created"""
    real_create = GuestService.create_guest
    created = []

    def create_then_clash(db, data):
        if len(created) == 1:
            raise DuplicateContact(data.phone)
        created.append(data.phone)
        return real_create(db, data)

    monkeypatch.setattr(GuestService, "create_guest", staticmethod(create_then_clash))

    success, errors, count = ExcelService.process_excel_upload(create_test_excel(valid_rows()), db_session)

    assert not success
    assert errors == ["A guest with this phone number already exists"]
    assert count == 1
    assert db_session.query(Guest).count() == 1
