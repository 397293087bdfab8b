from datetime import datetime
from face_albums.scanning.sortkey import sort_key, extract_date_from_filename

def test_camera_counter_is_numeric():
    assert sort_key("IMG_0002.jpg") < sort_key("IMG_0100.jpg")
    assert sort_key("IMG_0002.jpg") == "0" + "2".zfill(10)
    # Prefix case does not matter
    assert sort_key("dsc-0005.jpg") < sort_key("DSC_0010.jpg")

def test_date_names_sort_chronologically():
    assert sort_key("20230101_120000.jpg") < sort_key("20230102_080000.jpg")
    assert sort_key("2023-01-01.jpg") == "120230101000000"

def test_export_pattern_uses_datetime_then_id():
    a = sort_key("photo_99@01-02-2023_10-00-00.jpg")
    b = sort_key("photo_5@01-02-2023_10-00-01.jpg")
    c = sort_key("photo_7@01-02-2023_10-00-01.jpg")
    assert a < b < c
    assert a == "120230201100000_0000000099"

def test_bare_numeric_id():
    assert sort_key("42.jpg") < sort_key("100.jpg")
    assert sort_key("42.jpg").startswith("0")

def test_unparseable_names_sort_last():
    names = ["beach.jpg", "IMG_0100.jpg", "20230102_080000.jpg", "photo_1@01-01-2020_00-00-00.jpg", "7.jpg", "Alpine.jpg"]
    ordered = sorted(names, key=sort_key)
    assert ordered[-2:] == ["Alpine.jpg", "beach.jpg"]
    # Deterministic
    assert sorted(reversed(names), key=sort_key) == ordered

def test_extract_date_from_filename():
    assert extract_date_from_filename("20230405_061530.jpg") == datetime(2023, 4, 5, 6, 15, 30)
    assert extract_date_from_filename("photo_1@24-12-2021_18-30-00.jpg") == datetime(2021, 12, 24, 18, 30, 0)
    assert extract_date_from_filename("beach.jpg") is None
    # Looks like digits, is not a date
    assert extract_date_from_filename("99999999.jpg") is None
