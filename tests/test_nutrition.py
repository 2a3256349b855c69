#!/usr/bin/env python3
"""
Tests for nutrition lookup and meal logging.

Run with: pytest tests/test_nutrition.py -v
"""

from unittest.mock import MagicMock

import pytest
import requests

from tritrack.nutrition import (
    CalorieNinjasClient,
    NutritionCache,
    NutritionLookupError,
    NutritionService,
    aggregate_items,
    analyze_food,
    daily_summary,
    format_nutrition,
)

BANANA = {
    'items': [
        {'name': 'banana', 'calories': 105.4, 'protein_g': 1.26, 'carbohydrates_total_g': 26.9,
         'fat_total_g': 0.4, 'fiber_g': 3.1, 'sugar_g': 14.4, 'sodium_mg': 1},
    ]
}


class TestAggregate:

    def test_sums_and_rounds(self):
        totals = aggregate_items(BANANA['items'] + [{'calories': 50.3, 'protein_g': 2}])

        assert totals['calories'] == 156
        assert isinstance(totals['calories'], int)
        assert totals['protein_g'] == 3.3
        assert totals['carbs_g'] == 26.9
        assert totals['fat_g'] == 0.4

    def test_missing_fields_count_as_zero(self):
        assert aggregate_items([{}])['sodium_mg'] == 0


class TestAnalyzeFood:

    def test_cached_by_normalized_description(self):
        client = MagicMock()
        client.lookup.return_value = BANANA
        cache = NutritionCache()

        first = analyze_food(client, 'Banana ', cache)
        second = analyze_food(client, 'banana', cache)

        assert first == second
        assert first['nutrition']['calories'] == 105
        assert first['api_response'] == BANANA
        client.lookup.assert_called_once_with('Banana ')
        assert len(cache) == 1

    def test_no_items(self):
        client = MagicMock()
        client.lookup.return_value = {'items': []}
        cache = NutritionCache()

        assert analyze_food(client, 'air', cache) is None
        assert len(cache) == 0


class TestCalorieNinjasClient:

    def test_requires_key(self, config):
        with pytest.raises(NutritionLookupError):
            CalorieNinjasClient(config=config)

    def test_key_from_environment(self, config, monkeypatch):
        monkeypatch.setenv('CALORIE_NINJAS_API_KEY', 'env-key')
        assert CalorieNinjasClient(config=config).api_key == 'env-key'

    def test_lookup(self, config):
        session = MagicMock()
        session.get.return_value.ok = True
        session.get.return_value.json.return_value = BANANA
        client = CalorieNinjasClient('key', config=config, session=session)

        assert client.lookup('1 banana') == BANANA
        session.get.assert_called_once_with(
            'https://api.calorieninjas.com/v1/nutrition',
            params={'query': '1 banana'},
            headers={'X-Api-Key': 'key'},
            timeout=10,
        )

    def test_http_error(self, config):
        session = MagicMock()
        session.get.return_value.ok = False
        session.get.return_value.status_code = 401
        client = CalorieNinjasClient('key', config=config, session=session)

        with pytest.raises(NutritionLookupError) as exc_info:
            client.lookup('1 banana')
        assert exc_info.value.status_code == 401

    def test_network_error(self, config):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError('down')
        client = CalorieNinjasClient('key', config=config, session=session)

        with pytest.raises(NutritionLookupError) as exc_info:
            client.lookup('1 banana')
        assert exc_info.value.status_code == 502


class TestNutritionService:

    def test_log_meal_with_nutrition(self, db, supabase):
        client = MagicMock()
        client.lookup.return_value = BANANA

        meal = NutritionService(db, client).log_meal('u1', 'banana', '2025-03-01T08:00:00+00:00')

        assert meal['calories'] == 105
        assert meal['carbs_g'] == 26.9
        assert meal['api_response'] == BANANA
        assert supabase.tables['meals'][0]['user_id'] == 'u1'

    def test_failed_lookup_still_saves_meal(self, db, supabase):
        client = MagicMock()
        client.lookup.side_effect = NutritionLookupError('CalorieNinjas request failed (500)', status_code=500)

        meal = NutritionService(db, client).log_meal('u1', 'mystery stew')

        assert meal['description'] == 'mystery stew'
        assert 'calories' not in meal
        assert meal['logged_at']

    def test_without_client(self, db):
        meal = NutritionService(db).log_meal('u1', 'toast')
        assert 'calories' not in meal

    def test_get_and_delete(self, db, supabase):
        service = NutritionService(db)
        supabase.tables['meals'] = [
            {'id': 'm1', 'user_id': 'u1', 'logged_at': '2025-03-01T08:00:00'},
            {'id': 'm2', 'user_id': 'u1', 'logged_at': '2025-03-02T08:00:00'},
        ]

        assert [m['id'] for m in service.get_meals('u1')] == ['m2', 'm1']
        assert [m['id'] for m in service.get_meals('u1', '2025-03-02')] == ['m2']

        service.delete_meal('m2')
        assert [m['id'] for m in supabase.tables['meals']] == ['m1']


class TestFormatting:

    def test_daily_summary(self):
        totals = daily_summary([{'calories': 500, 'protein_g': 20}, {'calories': 700, 'fiber_g': 5}])
        assert totals == {'calories': 1200, 'protein_g': 20, 'carbs_g': 0, 'fat_g': 0, 'fiber_g': 5}

    def test_format_nutrition(self):
        meal = {'calories': 105, 'protein_g': 1.3, 'carbs_g': 26.9, 'fat_g': 0.4}
        assert format_nutrition(meal) == '105 cal | P: 1.3g | C: 26.9g | F: 0.4g'
        assert format_nutrition({}) == 'Nutrition data unavailable'


def gateway_response(body):
    response = requests.Response()
    response.status_code = 200
    response._content = body
    return response


class TestBadPayloads:
    """A 200 with a body that is not a nutrition object."""

    @pytest.mark.parametrize('body', [b'<html>gateway timeout</html>', b'[1, 2, 3]'])
    def test_lookup_raises_lookup_error(self, config, body):
        session = MagicMock()
        session.get.return_value = gateway_response(body)
        client = CalorieNinjasClient('key', config=config, session=session)

        with pytest.raises(NutritionLookupError) as exc_info:
            client.lookup('1 banana')
        assert exc_info.value.status_code == 502

    def test_meal_still_saved(self, config, db, supabase):
        session = MagicMock()
        session.get.return_value = gateway_response(b'<html>gateway timeout</html>')
        client = CalorieNinjasClient('key', config=config, session=session)

        meal = NutritionService(db, client).log_meal('u1', 'porridge')

        assert meal['description'] == 'porridge'
        assert 'calories' not in meal
        assert supabase.tables['meals'][0]['description'] == 'porridge'
