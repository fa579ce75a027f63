from market_prices.aggregate import average_price, deduplicate, sort_records
from market_prices.models import CanonicalPriceRecord


def make(date="2025-01-15", market="Garak", grade="generic", price=9000, unit="1kg"):
    return CanonicalPriceRecord(
        market_name=market,
        product_name="사과",
        grade=grade,
        price=price,
        unit=unit,
        date=date,
    )


def test_same_day_same_market_merges_to_mean():
    merged = deduplicate([make(price=9000), make(price=9400)], by_grade=False)
    assert len(merged) == 1
    assert merged[0].price == 9200


def test_running_mean_covers_all_colliding_prices():
    merged = deduplicate([make(price=9000), make(price=9400), make(price=10100)], by_grade=False)
    assert merged[0].price == 9500


def test_grade_aware_keeps_grades_apart():
    records = [make(grade="standard", price=9000), make(grade="low", price=5000)]
    assert len(deduplicate(records, by_grade=True)) == 2
    merged = deduplicate(records, by_grade=False)
    assert len(merged) == 1
    assert merged[0].grade == "standard"
    assert merged[0].price == 7000


def test_different_dates_are_not_merged():
    records = [make(date="2025-01-14"), make(date="2025-01-15")]
    assert len(deduplicate(records, by_grade=False)) == 2


def test_later_date_wins_over_every_other_key():
    older = make(date="2025-01-14", market="B", grade="standard", price=8000)
    newer = make(date="2025-01-15", market="A", grade="low", price=5000)
    assert sort_records([older, newer]) == [newer, older]


def test_market_name_breaks_date_ties():
    b = make(market="B", grade="premium", price=99000)
    a = make(market="A", grade="low", price=1000)
    assert sort_records([b, a]) == [a, b]


def test_korean_market_names_sort_in_dictionary_order():
    names = ["서울가락", "강서", "부산엄궁", "대구북부"]
    ordered = sort_records([make(market=name) for name in names])
    assert [r.market_name for r in ordered] == ["강서", "대구북부", "부산엄궁", "서울가락"]


def test_grade_rank_breaks_market_ties():
    grades = ["generic", "low", "premium", "mid", "standard"]
    ordered = sort_records([make(grade=g, price=1000) for g in grades])
    assert [r.grade for r in ordered] == ["premium", "standard", "mid", "low", "generic"]


def test_korean_grade_labels_share_the_rank_table():
    ordered = sort_records([make(grade="하품"), make(grade="특상"), make(grade="부사"), make(grade="상품")])
    assert [r.grade for r in ordered] == ["특상", "상품", "하품", "부사"]


def test_price_descending_breaks_grade_ties():
    ordered = sort_records([make(price=8000), make(price=9500), make(price=9000)])
    assert [r.price for r in ordered] == [9500, 9000, 8000]


def test_full_tie_break_order():
    records = [
        make(date="2025-01-14", market="A", grade="premium", price=100),
        make(date="2025-01-15", market="B", grade="premium", price=100),
        make(date="2025-01-15", market="A", grade="low", price=900),
        make(date="2025-01-15", market="A", grade="standard", price=100),
        make(date="2025-01-15", market="A", grade="standard", price=200),
    ]
    ordered = sort_records(records)
    assert [(r.date, r.market_name, r.grade, r.price) for r in ordered] == [
        ("2025-01-15", "A", "standard", 200),
        ("2025-01-15", "A", "standard", 100),
        ("2025-01-15", "A", "low", 900),
        ("2025-01-15", "B", "premium", 100),
        ("2025-01-14", "A", "premium", 100),
    ]


def test_average_price_rounds_and_handles_empty():
    assert average_price([]) == 0
    assert average_price([make(price=9000), make(price=9001)]) == 9001
    assert average_price([make(price=30000), make(price=9200), make(price=9000)]) == 16067
