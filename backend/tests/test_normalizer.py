import json

import pytest

from foodscan.core.normalizer import (
    decode_generative,
    extract_json,
    normalize_generative_text,
    normalize_structured,
)
from foodscan.core.vision import MOCK_LABELS, MOCK_OBJECTS, MOCK_TEXTS
from foodscan.schemas.providers import (
    LabelAnnotation,
    LegacyFoodItems,
    ObjectAnnotation,
    ProductsDocument,
    ProseResponse,
    StructuredAnnotations,
    TextAnnotation,
)


def _annotations(labels=(), objects=(), texts=()):
    return StructuredAnnotations(
        labels=[LabelAnnotation(description=d, score=s) for d, s in labels],
        objects=[ObjectAnnotation(name=n, score=s) for n, s in objects],
        texts=[TextAnnotation(description=d, confidence=c) for d, c in texts],
    )


class TestStructured:
    def test_single_label(self):
        items, text = normalize_structured(_annotations(labels=[("Apple", 0.84)]))
        assert len(items) == 1
        assert items[0].name == "Apple"
        assert items[0].confidence == 84
        assert items[0].category == "detected_food"
        assert items[0].search_terms == ["Apple"]
        assert text is None

    def test_thresholds_are_exclusive(self):
        items, _ = normalize_structured(
            _annotations(
                labels=[("AtLabel", 0.6), ("AboveLabel", 0.61)],
                objects=[("AtObject", 0.5), ("AboveObject", 0.51)],
            )
        )
        assert [(i.name, i.confidence) for i in items] == [("AboveLabel", 61), ("AboveObject", 51)]

    def test_label_and_object_with_same_name_merge(self):
        items, _ = normalize_structured(
            _annotations(labels=[("Apple", 0.7), ("Fruit", 0.9)], objects=[("apple", 0.93)])
        )
        assert [(i.name, i.confidence) for i in items] == [("Apple", 93), ("Fruit", 90)]

    def test_mock_response(self):
        items, text = normalize_structured(_annotations(MOCK_LABELS, MOCK_OBJECTS, MOCK_TEXTS))
        names = [i.name for i in items]
        assert names == ["Food", "Fruit", "Apple", "Produce", "Red", "Natural foods", "Snack"]
        assert items[names.index("Apple")].confidence == 84
        for item in items:
            assert 60 < item.confidence <= 100

        assert text.full_text.startswith("ORGANIC\nGALA APPLES")
        assert [w.text for w in text.words][:3] == ["ORGANIC", "GALA", "APPLES"]
        assert len(text.words) == len(MOCK_TEXTS) - 1

    def test_empty(self):
        items, text = normalize_structured(StructuredAnnotations())
        assert items == []
        assert text is None


class TestGenerativeProducts:
    def test_search_terms_from_products(self):
        raw = json.dumps(
            {"products": [{"name": "Gala Apple", "confidence": 90, "openFoodFactsSearchTerms": ["gala apple", "apple"]}]}
        )
        results = normalize_generative_text(raw)
        assert len(results.food_items) == 1
        item = results.food_items[0]
        assert item.name == "Gala Apple"
        assert item.confidence == 90
        assert item.search_terms == ["gala apple", "apple"]
        assert item.quantity == 1
        assert item.organic_status == "unknown"
        assert item.fair_trade_status == "unknown"
        assert item.certification_info is None

    def test_length_order_and_defaults(self):
        raw = json.dumps(
            {
                "products": [
                    {"name": "Oat Milk", "confidence": 77, "type": "beverage", "brandInfo": "Oatly", "quantity": 2},
                    {"name": "Banana"},
                    {"name": "Dark Chocolate", "organicStatus": "Certified", "fairTradeStatus": "likely",
                     "certificationInfo": "Fairtrade logo", "nutritionalInfo": {"calories": "550 kcal", "fat": 40}},
                ],
                "sceneAnalysis": {"totalProducts": 9, "sceneType": "grocery"},
                "aggregateNutrition": {"totalCalories": 800},
                "recommendations": ["Choose the unsweetened oat milk"],
                "searchableTerms": ["oat milk", "banana"],
            }
        )
        results = normalize_generative_text(raw)
        items = results.food_items

        assert [i.name for i in items] == ["Oat Milk", "Banana", "Dark Chocolate"]
        assert items[0].type == "beverage"
        assert items[0].brand_info == "Oatly"
        assert items[0].quantity == 2
        assert items[1].confidence == 80
        assert items[1].search_terms == ["Banana"]
        assert items[2].organic_status == "certified"
        assert items[2].fair_trade_status == "likely"
        assert items[2].certification_info == "Fairtrade logo"
        assert items[2].nutritional_info.calories == 550
        assert items[2].nutritional_info.fat == 40

        assert results.total_products == 3
        assert results.scene_analysis["sceneType"] == "grocery"
        assert results.aggregate_nutrition == {"totalCalories": 800}
        assert results.recommendations == ["Choose the unsweetened oat milk"]
        assert results.searchable_terms == ["oat milk", "banana"]

    def test_unrecognized_status_becomes_unknown(self):
        raw = json.dumps({"products": [{"name": "Tea", "organicStatus": "maybe?"}]})
        assert normalize_generative_text(raw).food_items[0].organic_status == "unknown"

    def test_total_products_falls_back_to_scene_then_one(self):
        assert normalize_generative_text(json.dumps({"products": [], "sceneAnalysis": {"totalProducts": 4}})).total_products == 4
        assert normalize_generative_text(json.dumps({"products": []})).total_products == 1

    def test_fenced_json(self):
        raw = "Here you go:\n```json\n" + json.dumps({"products": [{"name": "Kiwi"}]}) + "\n```\nThanks"
        assert isinstance(decode_generative(raw), ProductsDocument)
        assert [i.name for i in normalize_generative_text(raw).food_items] == ["Kiwi"]

    def test_odd_entries_keep_length(self):
        raw = json.dumps({"products": ["Apple", None, {"name": {"nested": True}, "confidence": "high"}]})
        items = normalize_generative_text(raw).food_items
        assert len(items) == 3
        assert items[0].name == "Apple"
        assert items[2].confidence == 80


class TestGenerativeLegacyAndProse:
    def test_legacy_food_items(self):
        raw = json.dumps({"foodItems": ["Apple", {"name": "Bread", "confidence": 70}, {"item": "Milk"}]})
        assert isinstance(decode_generative(raw), LegacyFoodItems)
        items = normalize_generative_text(raw).food_items
        assert [(i.name, i.confidence) for i in items] == [("Apple", 80), ("Bread", 70), ("Milk", 80)]

    def test_prose_fallback(self):
        raw = (
            "This plate contains: apple, banana, orange, pear, grape, kiwi. "
            "Estimated 180 calories and 2g protein. Portion: one small plate"
        )
        assert isinstance(decode_generative(raw), ProseResponse)
        results = normalize_generative_text(raw)
        items = results.food_items

        assert len(items) == 5
        confidences = [i.confidence for i in items]
        assert confidences == sorted(confidences, reverse=True)
        assert min(confidences) >= 60
        assert items[0].nutritional_info.calories == 180
        assert items[0].portion_size == "one small plate"
        assert results.raw_text == raw

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            None,
            "{",
            "[1, 2, 3]",
            "null",
            '{"products": "nope"}',
            '{"foodItems": 5}',
            '{"products": [{"confidence": Infinity}]}',
            "Sorry, I can't analyze this image.",
            "[" * 100000,
            "{\"a\": " * 50000 + "1" + "}" * 50000,
        ],
    )
    def test_malformed_output_never_raises(self, raw):
        results = normalize_generative_text(raw)
        assert len(results.food_items) <= 5

    def test_idempotent(self):
        raw = json.dumps({"products": [{"name": "Gala Apple", "openFoodFactsSearchTerms": ["gala apple"]}]})
        assert normalize_generative_text(raw) == normalize_generative_text(raw)
        prose = "Identified: rice, beans"
        assert normalize_generative_text(prose) == normalize_generative_text(prose)


def test_extract_json_keeps_nested_objects():
    text = 'Result: {"products": [{"name": "Egg", "nutritionalInfo": {"calories": 70}}]} done'
    assert extract_json(text)["products"][0]["nutritionalInfo"] == {"calories": 70}


def test_extract_json_raises_without_object():
    with pytest.raises(ValueError):
        extract_json("no braces here")


def test_extract_json_skips_invalid_block():
    text = 'Note {not json} then {"foodItems": ["apple"]}'
    assert extract_json(text) == {"foodItems": ["apple"]}


def test_extract_json_ignores_braces_inside_strings():
    text = 'prefix {"name": "curly } brace", "confidence": 70} suffix }'
    assert extract_json(text) == {"name": "curly } brace", "confidence": 70}


def test_extract_json_gives_up_on_unclosed_run():
    with pytest.raises(ValueError):
        extract_json("Food items: apple. " + '{"a":' * 100000)
