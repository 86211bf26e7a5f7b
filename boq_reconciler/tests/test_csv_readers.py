# boq_reconciler/tests/test_csv_readers.py

from boq_reconciler.csv_readers import read_boq, read_catalogue, read_forecasts

BOQ = (
    "stage,name,unit,quantity\n"
    "S1,Excavation works - mechanized,m3,\"100,5\"\n"
    "S1,Concrete C20/25,m3,0\n"
).encode("utf-8-sig")


def test_read_boq_skips_bad_rows():
    items, errors = read_boq("a.csv", BOQ)

    assert len(items) == 1
    assert items[0].quantity == 100.5
    assert items[0].source_row == 2
    assert items[0].source_file_id == "a.csv"
    assert len(errors) == 1
    assert errors[0].startswith("a.csv row 3")


def test_errors_belong_to_one_upload_only():
    _, first = read_boq("a.csv", BOQ)
    _, second = read_boq("b.csv", b"stage,name,unit,quantity\nS2,Crane hire,h,4\n")
    assert first
    assert second == []


def test_read_catalogue_aliases():
    data = b"name,unit,base_price,aliases\nReinforcement steel bars,kg,2.10,rebar; armature\n"
    entries, errors = read_catalogue("cat.csv", data)
    assert errors == []
    assert entries[0].aliases == ("rebar", "armature")
    assert entries[0].category is None


def test_read_forecasts_missing_column():
    forecasts, errors = read_forecasts("fc.csv", b"stage,amount\nS1,1000\n")
    assert forecasts == []
    assert len(errors) == 1
