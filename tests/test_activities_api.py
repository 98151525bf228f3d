from datetime import datetime

ACTIVITY = {
    'title': 'Machine Learning Workshop',
    'description': 'Three-day hands-on workshop',
    'category': 'workshop',
    'organizer': 'CS Society',
    'startDate': '2024-01-15',
    'endDate': '2024-01-17',
    'credits': 2,
    'skillsGained': ['Python', ' pandas '],
    'tags': ['ML', 'Data'],
}


def create(client, **overrides):
    body = dict(ACTIVITY, **overrides)
    resp = client.post('/api/activities', json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['data']


class TestActivityLifecycle:
    def test_end_to_end_scenario(self, users, login):
        student = login('student')
        faculty = login('faculty')

        created = create(student)
        assert created['status'] == 'pending'
        assert created['duration'] == 3
        assert created['student']['id'] == users['student']
        assert created['skillsGained'] == ['Python', 'pandas']
        assert created['tags'] == ['ml', 'data']
        assert created['verificationCode'].startswith('ACT')

        resp = faculty.patch(f"/api/activities/{created['id']}/approve",
                             json={'status': 'approved', 'comments': 'Looks good'})
        assert resp.status_code == 200
        approved = resp.get_json()['data']
        assert approved['status'] == 'approved'
        assert approved['approvedBy']['id'] == users['faculty']
        assert approved['approvalDate'] is not None
        assert approved['comments'][-1]['message'] == 'Looks good'

        resp = student.put(f"/api/activities/{created['id']}", json={'title': 'ML Workshop (updated)'})
        assert resp.status_code == 200
        edited = resp.get_json()['data']
        assert edited['title'] == 'ML Workshop (updated)'
        assert edited['status'] == 'pending'
        assert edited['approvedBy'] is None
        assert edited['approvalDate'] is None
        assert edited['verificationCode'] == created['verificationCode']

    def test_double_approval_conflicts(self, users, login):
        student, faculty, admin = login('student'), login('faculty'), login('admin')
        activity = create(student)

        first = faculty.patch(f"/api/activities/{activity['id']}/approve", json={'status': 'approved'})
        second = admin.patch(f"/api/activities/{activity['id']}/approve", json={'status': 'approved'})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.get_json() == {'success': False, 'message': 'Activity is already approved'}

    def test_reject_requires_reason(self, users, login):
        activity = create(login('student'))
        resp = login('faculty').patch(f"/api/activities/{activity['id']}/approve", json={'status': 'rejected'})
        assert resp.status_code == 400
        assert resp.get_json()['success'] is False

        resp = login('faculty').patch(f"/api/activities/{activity['id']}/approve",
                                      json={'status': 'rejected', 'rejectionReason': 'No certificate'})
        data = resp.get_json()['data']
        assert data['status'] == 'rejected'
        assert data['rejectionReason'] == 'No certificate'
        assert data['comments'][-1]['message'] == 'Activity rejected: No certificate'


class TestActivityValidation:
    def test_end_before_start(self, users, login):
        resp = login('student').post('/api/activities', json=dict(ACTIVITY, endDate='2024-01-01'))
        assert resp.status_code == 400
        assert resp.get_json()['errors']

    def test_missing_fields_reported_per_field(self, users, login):
        resp = login('student').post('/api/activities', json={'title': 'Only a title'})
        body = resp.get_json()
        assert resp.status_code == 400
        fields = {e['field'] for e in body['errors']}
        assert {'category', 'organizer', 'startDate'} <= fields

    def test_credits_out_of_range(self, users, login):
        resp = login('student').post('/api/activities', json=dict(ACTIVITY, credits=11))
        assert resp.status_code == 400

    def test_server_owns_lifecycle_fields(self, users, login):
        data = create(login('student'), status='approved', student=users['classmate'])
        assert data['status'] == 'pending'
        assert data['student']['id'] == users['student']


class TestActivityAccess:
    def test_faculty_cannot_create(self, users, login):
        resp = login('faculty').post('/api/activities', json=ACTIVITY)
        assert resp.status_code == 403

    def test_requires_login(self, app, users):
        resp = app.test_client().get('/api/activities')
        assert resp.status_code == 401
        assert resp.get_json()['success'] is False

    def test_outsiders_get_not_found(self, users, login):
        activity = create(login('student'))
        for key in ('classmate', 'physics_faculty'):
            resp = login(key).get(f"/api/activities/{activity['id']}")
            assert resp.status_code == 404, key

    def test_missing_activity_is_not_found(self, users, login):
        assert login('admin').get('/api/activities/9999').status_code == 404

    def test_detail_includes_permissions(self, users, login):
        activity = create(login('student'))
        data = login('faculty').get(f"/api/activities/{activity['id']}").get_json()['data']
        assert data['permissions']['approve'] is True
        assert data['permissions']['edit'] is False

    def test_faculty_can_view_but_not_edit(self, users, login):
        activity = create(login('student'))
        faculty = login('faculty')
        assert faculty.put(f"/api/activities/{activity['id']}", json={'title': 'x'}).status_code == 403
        assert faculty.delete(f"/api/activities/{activity['id']}").status_code == 403

    def test_other_department_faculty_cannot_approve(self, users, login):
        activity = create(login('student'))
        resp = login('physics_faculty').patch(f"/api/activities/{activity['id']}/approve",
                                              json={'status': 'approved'})
        assert resp.status_code == 404

    def test_students_cannot_approve(self, users, login):
        student = login('student')
        activity = create(student)
        resp = student.patch(f"/api/activities/{activity['id']}/approve", json={'status': 'approved'})
        assert resp.status_code == 403

    def test_approved_activity_cannot_be_deleted_by_owner(self, users, login, make_activity):
        activity_id = make_activity(status='approved', approved_by_id=users['faculty'],
                                    approval_date=datetime.utcnow())
        student = login('student')
        assert student.delete(f'/api/activities/{activity_id}').status_code == 403
        assert login('admin').delete(f'/api/activities/{activity_id}').status_code == 200
        assert student.get(f'/api/activities/{activity_id}').status_code == 404

    def test_owner_deletes_pending(self, users, login):
        student = login('student')
        activity = create(student)
        assert student.delete(f"/api/activities/{activity['id']}").status_code == 200


class TestComments:
    def test_viewers_can_comment(self, users, login):
        activity = create(login('student'))
        resp = login('faculty').post(f"/api/activities/{activity['id']}/comments", json={'message': 'Add a photo'})
        assert resp.status_code == 201
        assert resp.get_json()['data']['user']['id'] == users['faculty']

    def test_outsiders_cannot_comment(self, users, login):
        activity = create(login('student'))
        resp = login('classmate').post(f"/api/activities/{activity['id']}/comments", json={'message': 'hi'})
        assert resp.status_code == 404

    def test_message_length(self, users, login):
        student = login('student')
        activity = create(student)
        resp = student.post(f"/api/activities/{activity['id']}/comments", json={'message': 'x' * 501})
        assert resp.status_code == 400


class TestVisibility:
    def test_owner_toggles_visibility(self, users, login):
        student = login('student')
        activity = create(student)
        resp = student.patch(f"/api/activities/{activity['id']}/visibility", json={'isPublic': True})
        assert resp.get_json()['data'] == {'id': activity['id'], 'isPublic': True}

    def test_faculty_cannot_toggle(self, users, login):
        activity = create(login('student'))
        resp = login('faculty').patch(f"/api/activities/{activity['id']}/visibility", json={'isPublic': True})
        assert resp.status_code == 403


class TestListing:
    def test_list_envelope(self, users, login):
        student = login('student')
        for i in range(3):
            create(student, title=f'Activity {i}')
        body = student.get('/api/activities?limit=2&page=1').get_json()
        assert body['success'] is True
        assert (body['count'], body['total'], body['pages'], body['currentPage']) == (2, 3, 2, 1)

    def test_blank_category_equals_omitted(self, users, login):
        student = login('student')
        create(student)
        create(student, category='research')
        omitted = student.get('/api/activities').get_json()['data']
        blank = student.get('/api/activities?category=').get_json()['data']
        assert [a['id'] for a in blank] == [a['id'] for a in omitted]

    def test_bad_sort(self, users, login):
        resp = login('admin').get('/api/activities?sort=drop')
        assert resp.status_code == 400

    def test_pending_queue_oldest_first(self, users, login):
        student = login('student')
        first = create(student, title='First')
        create(student, title='Second')
        create(login('chem_student'), title='Elsewhere')

        body = login('faculty').get('/api/activities/pending/approval').get_json()
        assert [a['title'] for a in body['data']] == ['First', 'Second']
        assert body['data'][0]['id'] == first['id']

    def test_stats_summary(self, users, login, make_activity):
        make_activity(score=80, status='approved', approved_by_id=users['faculty'], approval_date=datetime.utcnow())
        make_activity(score=90, category='research', credits=3)
        make_activity(owner='chem_student', credits=5)

        data = login('student').get('/api/activities/stats/summary').get_json()['data']
        assert data['summary']['totalActivities'] == 2
        assert data['summary']['approvedActivities'] == 1
        assert data['summary']['pendingActivities'] == 1
        assert data['summary']['totalCredits'] == 5
        assert data['summary']['averageScore'] == 85
        assert {c['category'] for c in data['categoryBreakdown']} == {'workshop', 'research'}
