#!/usr/bin/env python3
"""
Tests for the plan import workflow against an in-memory Supabase.

Run with: pytest tests/test_plan_service.py -v
"""

import base64
import json
import threading
from unittest.mock import MagicMock

import pytest

from tritrack.inference import UnparseableResponse
from tritrack.json_extract import JSONExtractionError
from tritrack.plan_dates import InvalidArgument
from tritrack.plan_service import PlanService, encode_image, load_json_source, resolve_start_date
from tritrack.schedule_merge import EmptyResult, MalformedWorkout


@pytest.fixture
def inference():
    return MagicMock()


@pytest.fixture
def service(db, inference, config):
    return PlanService(db, inference=inference, config=config)


PLAN_JSON = json.dumps({
    'workouts': [
        {'week': 2, 'day': 1, 'discipline': 'bike', 'title': 'Endurance ride', 'duration': 90, 'distance': 40},
        {'week': 1, 'day': 2, 'discipline': 'swim', 'title': 'Drills', 'duration': 45, 'intensity': 'easy'},
    ]
})


class TestHelpers:

    def test_encode_bytes(self):
        assert encode_image(b'hello') == (base64.b64encode(b'hello').decode('ascii'), None)

    def test_encode_pair_and_mapping(self):
        assert encode_image(('aGVsbG8=', 'image/png')) == ('aGVsbG8=', 'image/png')
        assert encode_image({'image': b'hello', 'mimeType': 'image/webp'}) == ('aGVsbG8=', 'image/webp')

    @pytest.mark.parametrize('image', [b'', '', None, {'mimeType': 'image/png'}])
    def test_encode_empty(self, image):
        with pytest.raises(ValueError):
            encode_image(image)

    def test_resolve_start_date_prefers_race_anchor(self):
        assert resolve_start_date('2025-06-15', 16, [{'startDate': '2025-01-06'}], '2025-01-13') == '2025-02-24'

    def test_resolve_start_date_fallbacks(self):
        assert resolve_start_date(None, None, [{'startDate': '2025-01-06'}], '2025-01-13') == '2025-01-13'
        assert resolve_start_date(None, None, [{}, {'startDate': '2025-01-06'}]) == '2025-01-06'
        assert resolve_start_date('2025-06-15', None) is None

    def test_load_json_source_shapes(self):
        assert load_json_source('[{"date": "2025-03-01"}]') == {'workouts': [{'date': '2025-03-01'}]}
        assert load_json_source('Pasted:\n```{"workouts": []}```') == {'workouts': []}

    @pytest.mark.parametrize('text', ['{"foo": 1}', 'not json', '"just a string"'])
    def test_load_json_source_rejects(self, text):
        with pytest.raises(JSONExtractionError):
            load_json_source(text)


class TestImportFromJson:
    """Pasted JSON imports."""

    def test_saves_plan_and_workouts(self, service, supabase):
        row = service.import_from_json('u1', 'IM Coeur', '2025-06-15', 16, PLAN_JSON)

        plans = supabase.tables['training_plans']
        assert len(plans) == 1
        assert plans[0]['id'] == row['id']
        assert plans[0]['is_active'] is True
        assert plans[0]['start_date'] == '2025-02-24'
        assert plans[0]['end_date'] == '2025-06-15'
        assert len(plans[0]['parsed_schedule']['workouts']) == 2

        workouts = supabase.tables['planned_workouts']
        assert [(w['scheduled_date'], w['discipline']) for w in workouts] == [
            ('2025-02-25', 'swim'), ('2025-03-03', 'bike'),
        ]
        assert all(w['plan_id'] == row['id'] and w['user_id'] == 'u1' for w in workouts)
        assert workouts[1]['target_duration_minutes'] == 90
        assert workouts[1]['target_distance_km'] == 40
        assert workouts[0]['target_intensity'] == 'easy'

    def test_single_batch_insert(self, service, supabase):
        service.import_from_json('u1', 'IM', '2025-06-15', 16, PLAN_JSON)
        assert supabase.calls.count(('planned_workouts', 'insert')) == 1

    def test_deactivates_previous_plan(self, service, supabase):
        supabase.tables['training_plans'] = [{'id': 'old', 'user_id': 'u1', 'is_active': True},
                                             {'id': 'theirs', 'user_id': 'u2', 'is_active': True}]

        row = service.import_from_json('u1', 'IM', '2025-06-15', 16, PLAN_JSON)

        plans = {p['id']: p for p in supabase.tables['training_plans']}
        assert plans['old']['is_active'] is False
        assert plans['theirs']['is_active'] is True
        assert plans[row['id']]['is_active'] is True

    def test_empty_plan(self, service, supabase):
        with pytest.raises(EmptyResult):
            service.import_from_json('u1', 'IM', '2025-06-15', 16, '{"workouts": []}')
        assert supabase.tables.get('training_plans', []) == []

    def test_malformed_workout_saves_nothing(self, service, supabase):
        text = json.dumps([{'date': '2025-03-01', 'discipline': 'run'}, {'date': '2025-03-02', 'discipline': 'yoga'}])

        with pytest.raises(MalformedWorkout):
            service.import_from_json('u1', 'IM', None, None, text)
        assert supabase.tables.get('training_plans', []) == []

    def test_workout_insert_failure_removes_plan(self, service, supabase):
        supabase.failures[('planned_workouts', 'insert')] = RuntimeError('insert failed')

        with pytest.raises(RuntimeError, match='insert failed'):
            service.import_from_json('u1', 'IM', '2025-06-15', 16, PLAN_JSON)
        assert supabase.tables['training_plans'] == []


class TestUploadAndParsePhotos:
    """Photo imports."""

    def test_parses_every_image_and_saves(self, service, inference, supabase):
        pages = {
            base64.b64encode(b'page1').decode('ascii'): {'workouts': [{'week': 1, 'day': 1, 'discipline': 'run'}]},
            base64.b64encode(b'page2').decode('ascii'): {'workouts': [{'week': 1, 'day': 1, 'discipline': 'strength'}]},
        }
        inference.parse_image.side_effect = lambda image, mime, hints: pages[image]
        stages = []

        service.upload_and_parse_photos('u1', [b'page1', b'page2'], 'IM', '2025-06-15', 16,
                                        on_stage=stages.append)

        assert stages == ['encoding', 'parsing', 'saving']
        assert inference.parse_image.call_count == 2
        assert len(supabase.tables['planned_workouts']) == 2
        hints = inference.parse_image.call_args.args[2]
        assert hints['start_date'] == '2025-02-24'
        assert hints['image_count'] == 2

    def test_no_workouts(self, service, inference, supabase):
        inference.parse_image.return_value = {'workouts': []}

        with pytest.raises(EmptyResult):
            service.upload_and_parse_photos('u1', [b'page1'], 'IM', '2025-06-15', 16)
        assert 'training_plans' not in supabase.tables

    def test_requires_images(self, service):
        with pytest.raises(ValueError):
            service.upload_and_parse_photos('u1', [], 'IM')


class TestParseImages:
    """Concurrent per-image parsing."""

    def test_results_in_input_order(self, service, inference):
        release = threading.Event()

        def parse(image, mime, hints):
            if image == 'first':
                release.wait(timeout=5)
            else:
                release.set()
            return {'workouts': [{'date': '2025-03-01', 'discipline': 'run', 'title': image}]}

        inference.parse_image.side_effect = parse

        sources = service.parse_images([('first', None), ('second', None)])

        assert [s['workouts'][0]['title'] for s in sources] == ['first', 'second']

    def test_failure_propagates(self, service, inference):
        def parse(image, mime, hints):
            if image == 'bad':
                raise UnparseableResponse('Could not parse AI response as JSON')
            return {'workouts': []}

        inference.parse_image.side_effect = parse

        with pytest.raises(UnparseableResponse):
            service.parse_images([('good', None), ('bad', None)])

    def test_requires_inference_client(self, db, config):
        with pytest.raises(RuntimeError):
            PlanService(db, config=config).parse_images([('x', None)])


class TestPlanManagement:

    def test_active_plan_switch(self, service, supabase):
        supabase.tables['training_plans'] = [
            {'id': 'a', 'user_id': 'u1', 'is_active': True, 'created_at': '2025-01-01'},
            {'id': 'b', 'user_id': 'u1', 'is_active': False, 'created_at': '2025-02-01'},
        ]

        service.set_active_plan('u1', 'b')

        assert service.get_active_plan('u1')['id'] == 'b'
        assert [p['id'] for p in service.get_plans('u1')] == ['b', 'a']

    def test_delete_plan_removes_workouts_first(self, service, supabase):
        supabase.tables['training_plans'] = [{'id': 'p1', 'user_id': 'u1'}]
        supabase.tables['planned_workouts'] = [{'id': 'w1', 'plan_id': 'p1'}, {'id': 'w2', 'plan_id': 'p2'}]

        service.delete_plan('p1')

        assert supabase.tables['training_plans'] == []
        assert supabase.tables['planned_workouts'] == [{'id': 'w2', 'plan_id': 'p2'}]
        assert supabase.calls == [('planned_workouts', 'delete'), ('training_plans', 'delete')]

    def test_manual_plan(self, service, supabase):
        row = service.create_manual_plan('u1', {'name': 'Base', 'startDate': '2025-01-06'},
                                         [{'scheduled_date': '2025-01-06', 'discipline': 'run'}])

        assert row['name'] == 'Base'
        assert supabase.tables['planned_workouts'][0]['plan_id'] == row['id']


class TestStartDateResolution:
    """Week counts and start dates are validated before anything is parsed or saved."""

    @pytest.mark.parametrize('race_date', ['2025-06-15', None])
    @pytest.mark.parametrize('weeks', [0, -4, True])
    def test_bad_weeks_rejected(self, race_date, weeks):
        with pytest.raises(InvalidArgument):
            resolve_start_date(race_date, weeks)

    def test_mid_week_start_snaps_to_monday(self):
        assert resolve_start_date(None, None, start_date='2025-02-26') == '2025-02-24'
        assert resolve_start_date(None, 8, [{'startDate': '2025-03-09'}]) == '2025-03-03'

    def test_unparseable_source_start(self):
        with pytest.raises(InvalidArgument, match='startDate'):
            resolve_start_date(None, None, [{'startDate': 'Week of March 3'}])

    def test_import_with_zero_weeks_saves_nothing(self, service, supabase):
        with pytest.raises(InvalidArgument):
            service.import_from_json('u1', 'IM', '2025-06-15', 0, PLAN_JSON)
        assert 'training_plans' not in supabase.tables

    def test_photos_with_zero_weeks_never_parsed(self, service, inference):
        with pytest.raises(InvalidArgument):
            service.upload_and_parse_photos('u1', [b'page1'], 'IM', '2025-06-15', 0)
        inference.parse_image.assert_not_called()

    def test_model_start_date_unusable(self, service, inference):
        inference.parse_image.return_value = {
            'startDate': 'Week of March 3',
            'workouts': [{'week': 1, 'day': 1, 'discipline': 'run'}],
        }

        with pytest.raises(UnparseableResponse, match='startDate'):
            service.parse_images([('page', None)])

    def test_model_start_date_mid_week(self, service, inference):
        inference.parse_image.return_value = {
            'startDate': '2025-02-26',
            'workouts': [{'week': 1, 'day': 1, 'discipline': 'run'}],
        }

        sources = service.parse_images([('page', None)])
        plan = service.build_plan(sources, 'IM')

        assert plan.start_date == '2025-02-24'
        assert plan.workouts[0].date == '2025-02-24'
