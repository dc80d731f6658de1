from datetime import time

import pytest
from conftest import add_availability, add_user
from fastapi.testclient import TestClient

from bughouse.auth.jwt_handler import create_access_token
from bughouse.core import config
from bughouse.database import Database
from bughouse.main import create_app
from bughouse.models.subject import Subject
from bughouse.models.tutor_application import TutorApplication
from bughouse.models.user import User, UserRole
from bughouse.services.resume_storage import ResumeStorage

PDF_BYTES = b'%PDF-1.4\n%api test\n'


@pytest.fixture
def api(tmp_path):
    database = Database('sqlite://')
    app = create_app(database=database, resume_storage=ResumeStorage(tmp_path / 'resumes'))
    with TestClient(app) as client:
        db = database.session()
        try:
            client.db = db
            client.admin = add_user(db, 'admin@example.edu', UserRole.ADMIN)
            client.tutor = add_user(db, 'tutor@example.edu', UserRole.TUTOR)
            client.student = add_user(db, 'student@example.edu')
            client.subject = Subject(name='Calculus')
            db.add(client.subject)
            db.commit()
            yield client
        finally:
            db.close()


def auth(user: User) -> dict[str, str]:
    return {'Authorization': f'Bearer {create_access_token(user.id, user.role.value)}'}


def create_monday_slots(api) -> int:
    schedule = api.post('/schedules', json={'date': '2030-01-07'}, headers=auth(api.admin))
    assert schedule.status_code == 201
    response = api.post(
        '/timeslots',
        json={
            'scheduleId': schedule.json()['id'],
            'subjectId': api.subject.id,
            'tutorId': api.tutor.id,
            'start': '10:00',
            'end': '12:30',
            'durationMinutes': 60,
        },
        headers=auth(api.admin),
    )
    assert response.status_code == 201
    return schedule.json()['id']


def test_missing_token_is_auth_required(api) -> None:
    response = api.post('/sessions/book', json={'timeslotId': 1})

    assert response.status_code == 401
    assert response.json()['detail']['kind'] == 'auth_required'


def test_invalid_token_is_auth_required(api) -> None:
    response = api.get('/sessions/mine', headers={'Authorization': 'Bearer not-a-token'})

    assert response.status_code == 401


def test_schedule_creation_requires_admin(api) -> None:
    response = api.post('/schedules', json={'date': '2030-01-07'}, headers=auth(api.student))

    assert response.status_code == 403
    assert response.json()['detail']['kind'] == 'forbidden'


def test_schedule_on_weekend_is_bad_request(api) -> None:
    response = api.post('/schedules', json={'date': '2030-01-12'}, headers=auth(api.admin))

    assert response.status_code == 400
    assert response.json()['detail']['kind'] == 'validation_error'


def test_schedules_list_nests_generated_timeslots(api) -> None:
    create_monday_slots(api)

    response = api.get('/schedules', headers=auth(api.student))

    assert response.status_code == 200
    [schedule] = response.json()
    assert schedule['date'] == '2030-01-07'
    assert [(slot['startTime'], slot['endTime']) for slot in schedule['timeslots']] == [
        ('10:00:00', '11:00:00'),
        ('11:00:00', '12:00:00'),
    ]


def test_overlapping_generation_is_conflict(api) -> None:
    schedule_id = create_monday_slots(api)

    response = api.post(
        '/timeslots',
        json={
            'scheduleId': schedule_id,
            'subjectId': api.subject.id,
            'tutorId': api.tutor.id,
            'start': '11:30',
            'end': '13:30',
            'durationMinutes': 60,
        },
        headers=auth(api.admin),
    )

    assert response.status_code == 409
    assert response.json()['detail']['kind'] == 'conflict'


def test_out_of_hours_generation_is_bad_request(api) -> None:
    schedule = api.post('/schedules', json={'date': '2030-01-07'}, headers=auth(api.admin)).json()

    response = api.post(
        '/timeslots',
        json={
            'scheduleId': schedule['id'],
            'subjectId': api.subject.id,
            'tutorId': api.tutor.id,
            'start': '08:00',
            'end': '10:00',
        },
        headers=auth(api.admin),
    )

    assert response.status_code == 400


def test_book_listed_timeslot_once(api) -> None:
    create_monday_slots(api)
    available = api.get(
        '/timeslots',
        params={'date': '2030-01-07', 'subjectId': api.subject.id},
        headers=auth(api.student),
    ).json()
    assert [slot['startTime'] for slot in available] == ['10:00:00', '11:00:00']

    first = api.post('/sessions/book', json={'timeslotId': available[0]['id']}, headers=auth(api.student))
    second = api.post('/sessions/book', json={'timeslotId': available[0]['id']}, headers=auth(api.student))
    missing = api.post('/sessions/book', json={'timeslotId': 9999}, headers=auth(api.student))

    assert first.status_code == 201
    assert second.status_code == 409
    assert missing.status_code == 404

    remaining = api.get(
        '/timeslots',
        params={'date': '2030-01-07', 'subjectId': api.subject.id},
        headers=auth(api.student),
    ).json()
    assert [slot['id'] for slot in remaining] == [available[1]['id']]


def test_book_from_availability_and_list_sessions(api) -> None:
    add_availability(api.db, api.tutor, 'Mon', time(13, 0), time(16, 0), [api.subject])
    payload = {
        'tutorId': api.tutor.id,
        'dayOfWeek': 'Mon',
        'startTime': '13:00',
        'date': '2030-01-07',
        'subjectId': api.subject.id,
        'sessionLengthMinutes': 60,
    }

    booked = api.post('/sessions/book-from-availability', json=payload, headers=auth(api.student))
    clash = api.post(
        '/sessions/book-from-availability',
        json={**payload, 'startTime': '13:30'},
        headers=auth(api.student),
    )

    assert booked.status_code == 201
    assert booked.json()['startTime'] == '2030-01-07T13:00:00'
    assert clash.status_code == 409

    sessions = api.get('/sessions/mine', headers=auth(api.student)).json()
    assert [(session['id'], session['status']) for session in sessions] == [(booked.json()['id'], 'upcoming')]

    slots = api.get('/availability/slots', params={'date': '2030-01-07'}, headers=auth(api.student)).json()
    assert [slot['startTime'] for slot in slots] == ['14:00:00', '15:00:00']

    cancelled = api.post(f"/sessions/{booked.json()['id']}/cancel", headers=auth(api.student))
    assert cancelled.status_code == 200
    assert cancelled.json()['status'] == 'cancelled'


def test_request_validation_errors_are_bad_request(api) -> None:
    response = api.post(
        '/sessions/book-from-availability',
        json={'tutorId': api.tutor.id, 'dayOfWeek': 'Someday'},
        headers=auth(api.student),
    )

    assert response.status_code == 400
    assert response.json()['detail']['kind'] == 'validation_error'


def test_tutor_manages_own_availability(api) -> None:
    created = api.post(
        '/availability',
        json={'dayOfWeek': 'Tue', 'startTime': '10:00', 'endTime': '12:00', 'subjectIds': [api.subject.id]},
        headers=auth(api.tutor),
    )
    assert created.status_code == 201
    assert created.json()['subjects'] == [{'id': api.subject.id, 'name': 'Calculus'}]

    by_day = api.get('/availability', params={'dayOfWeek': 'Tue'}, headers=auth(api.student)).json()
    assert [row['tutorId'] for row in by_day] == [api.tutor.id]

    forbidden = api.post(
        '/availability',
        json={'dayOfWeek': 'Tue', 'startTime': '13:00', 'endTime': '14:00'},
        headers=auth(api.student),
    )
    assert forbidden.status_code == 403

    removed = api.delete(f"/availability/{created.json()['id']}", headers=auth(api.tutor))
    assert removed.status_code == 204
    assert api.get('/availability/mine', headers=auth(api.tutor)).json() == []


def submit_resume(api, content: bytes = PDF_BYTES, mime: str = 'application/pdf'):
    return api.post(
        '/tutor-applications',
        files={'resume': ('resume.pdf', content, mime)},
        data={'cover': 'Happy to help with calculus.'},
        headers=auth(api.student),
    )


def test_tutor_application_review_flow(api) -> None:
    submitted = submit_resume(api)
    assert submitted.status_code == 201
    application_id = submitted.json()['id']

    mine = api.get('/tutor-applications/mine', headers=auth(api.student))
    assert mine.json()['status'] == 'pending'

    listed = api.get('/admin/tutor-applications', headers=auth(api.admin))
    assert [row['applicantEmail'] for row in listed.json()] == ['student@example.edu']

    resume = api.get(f'/admin/tutor-applications/{application_id}/resume', headers=auth(api.admin))
    assert resume.status_code == 200
    assert resume.headers['content-type'] == 'application/pdf'
    assert resume.content == PDF_BYTES

    approved = api.post(
        f'/admin/tutor-applications/{application_id}/approve',
        json={'note': 'Welcome'},
        headers=auth(api.admin),
    )
    again = api.post(f'/admin/tutor-applications/{application_id}/reject', headers=auth(api.admin))

    assert approved.json() == {'ok': True, 'status': 'approved'}
    assert again.status_code == 409
    assert again.json()['detail']['kind'] == 'invalid_state'

    api.db.expire_all()
    assert api.db.get(User, api.student.id).role is UserRole.TUTOR


def test_tutor_application_rejects_non_pdf(api) -> None:
    response = submit_resume(api, content=b'\x89PNG', mime='image/png')

    assert response.status_code == 400


def test_tutor_application_requires_login(api) -> None:
    response = api.post('/tutor-applications', files={'resume': ('resume.pdf', PDF_BYTES, 'application/pdf')})

    assert response.status_code == 401


def test_tampered_resume_path_is_refused(api) -> None:
    application_id = submit_resume(api).json()['id']
    application = api.db.get(TutorApplication, application_id)
    application.resume_path = '../../../etc/passwd'
    api.db.commit()

    response = api.get(f'/admin/tutor-applications/{application_id}/resume', headers=auth(api.admin))

    assert response.status_code == 400


def test_unknown_application_decision_is_not_found(api) -> None:
    response = api.post('/admin/tutor-applications/999/approve', headers=auth(api.admin))

    assert response.status_code == 404


@pytest.mark.parametrize(
    ('path', 'field', 'value'),
    [
        ('/timeslots', 'start', '10:00:00Z'),
        ('/availability', 'startTime', '10:00Z'),
        ('/sessions/book-from-availability', 'startTime', '13:00:00+05:00'),
    ],
)
def test_zone_marked_times_are_bad_request(api, path: str, field: str, value: str) -> None:
    schedule = api.post('/schedules', json={'date': '2030-01-07'}, headers=auth(api.admin)).json()
    payloads = {
        '/timeslots': (
            api.admin,
            {
                'scheduleId': schedule['id'],
                'subjectId': api.subject.id,
                'tutorId': api.tutor.id,
                'start': '10:00',
                'end': '12:00',
            },
        ),
        '/availability': (api.tutor, {'dayOfWeek': 'Mon', 'startTime': '10:00', 'endTime': '12:00'}),
        '/sessions/book-from-availability': (
            api.student,
            {
                'tutorId': api.tutor.id,
                'dayOfWeek': 'Mon',
                'startTime': '13:00',
                'date': '2030-01-07',
                'subjectId': api.subject.id,
            },
        ),
    }
    user, payload = payloads[path]

    response = api.post(path, json={**payload, field: value}, headers=auth(user))

    assert response.status_code == 400
    assert response.json()['detail']['kind'] == 'validation_error'


def test_oversized_resume_is_rejected_after_reading_past_the_cap(api, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'MAX_RESUME_BYTES', 16)

    response = submit_resume(api, content=PDF_BYTES + b'0' * 1024)

    assert response.status_code == 400
    assert response.json()['detail']['details'] == {'size': 17, 'max_size': 16}
