from app.modules.ingestion.domain.field_resolver import find_column, find_value, has_any_column


def test_find_value_matches_portuguese_header():
    row = {"Descrição": "Virtual Machines", "Quantidade de uso": "744", "Valor em USD": "12,50"}
    assert find_value(row, ["description", "descrição"]) == "Virtual Machines"


def test_find_value_candidates_are_ranked():
    row = {"lineItem/BlendedCost": "1.0", "lineItem/UnblendedCost": "2.0"}
    assert find_value(row, ["unblendedcost", "blendedcost"]) == "2.0"


def test_find_value_is_bidirectional():
    # Column name contained in the candidate
    row = {"Cost": "9.99"}
    assert find_value(row, ["totalcost"]) == "9.99"


def test_find_value_ignores_blank_columns():
    row = {"": "ignored", "Region": "us-east-1"}
    assert find_value(row, ["region"]) == "us-east-1"
    assert find_value({"": "x"}, ["anything"]) is None


def test_find_column_skips_currency_twin():
    row = {"ENCARGOS/CRÉDITOS CURRENCY": "BRL", "ENCARGOS/CRÉDITOS": "12,50"}
    assert find_column(row, "encargos/créditos") == "ENCARGOS/CRÉDITOS"


def test_has_any_column():
    assert has_any_column(["lineItem/UsageType", "Cost"], ["lineitem/usagetype"])
    assert not has_any_column(["MeterCategory"], ["lineitem/usagetype"])
