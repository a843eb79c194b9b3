def availability(client, headers, doctor_id, day):
    return client.get(f"/api/doctors/{doctor_id}/availability", params={"date": day}, headers=headers)


def test_monday_with_booking_and_block(client, admin_headers, book, patient, doctor):
    book(patient.id, doctor.id, "2026-10-19T09:00:00")
    client.post(
        f"/api/doctors/{doctor.id}/blocks",
        json={"startDate": "2026-10-19T12:00:00", "endDate": "2026-10-19T14:00:00", "reason": "Conference"},
        headers=admin_headers,
    )

    body = availability(client, admin_headers, doctor.id, "2026-10-19").json()
    assert body["available"] is True
    assert body["schedule"]["start_time"] == "08:00"
    slots = body["slots"]
    assert len(slots) == 18
    assert sum(1 for s in slots if s["available"]) == 13

    by_start = {s["startTime"][11:16]: s for s in slots}
    assert by_start["09:00"]["reason"] == "booked"
    assert by_start["12:30"]["reason"] == "blocked"
    assert by_start["14:00"]["available"] is True


def test_day_without_schedule_is_not_available(client, admin_headers, doctor):
    # 2026-10-18 is a Sunday
    body = availability(client, admin_headers, doctor.id, "2026-10-18").json()
    assert body["available"] is False
    assert body["slots"] == []
    assert body["message"]


def test_cancelled_booking_frees_its_slot(client, admin_headers, book, patient, doctor):
    created = book(patient.id, doctor.id, "2026-10-19T09:00:00").json()
    client.put(f"/api/appointments/{created['id']}/cancel", json={"reason": "Patient request"}, headers=admin_headers)

    slots = availability(client, admin_headers, doctor.id, "2026-10-19").json()["slots"]
    assert all(s["available"] for s in slots)


def test_unknown_doctor(client, admin_headers):
    response = availability(client, admin_headers, 9999, "2026-10-19")
    assert response.status_code == 404
    assert response.json()["doctorId"] == 9999


def test_weekly_schedule_upsert_replaces_the_window(client, admin_headers, doctor):
    url = f"/api/doctors/{doctor.id}/schedules/6"
    created = client.put(
        url, json={"startTime": "09:00", "endTime": "12:00", "slotDuration": 20}, headers=admin_headers
    )
    assert created.status_code == 200
    replaced = client.put(
        url, json={"startTime": "10:00", "endTime": "12:00", "slotDuration": 60}, headers=admin_headers
    )
    assert replaced.json()["id"] == created.json()["id"]

    # Saturday 2026-10-24
    slots = availability(client, admin_headers, doctor.id, "2026-10-24").json()["slots"]
    assert [s["startTime"][11:16] for s in slots] == ["10:00", "11:00"]


def test_schedule_window_must_be_ordered(client, admin_headers, doctor):
    response = client.put(
        f"/api/doctors/{doctor.id}/schedules/6",
        json={"startTime": "12:00", "endTime": "09:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_schedule_rejects_invalid_day(client, admin_headers, doctor):
    response = client.put(
        f"/api/doctors/{doctor.id}/schedules/7",
        json={"startTime": "09:00", "endTime": "12:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_block_requires_ordered_window(client, admin_headers, doctor):
    response = client.post(
        f"/api/doctors/{doctor.id}/blocks",
        json={"startDate": "2026-10-19T14:00:00", "endDate": "2026-10-19T12:00:00", "reason": "Oops"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_upcoming_blocks_use_the_clock(client, admin_headers, doctor, clock):
    for start, end in (("2026-10-01T08:00:00", "2026-10-02T08:00:00"), ("2026-10-20T08:00:00", "2026-10-21T08:00:00")):
        client.post(
            f"/api/doctors/{doctor.id}/blocks",
            json={"startDate": start, "endDate": end, "reason": "Leave"},
            headers=admin_headers,
        )

    everything = client.get(f"/api/doctors/{doctor.id}/blocks", headers=admin_headers).json()
    upcoming = client.get(
        f"/api/doctors/{doctor.id}/blocks", params={"upcoming": True}, headers=admin_headers
    ).json()
    assert len(everything) == 2
    assert [b["start_date"] for b in upcoming] == ["2026-10-20T08:00:00"]


def test_list_doctors_includes_schedules(client, reception_headers, doctor):
    doctors = client.get("/api/doctors", headers=reception_headers).json()
    assert [d["id"] for d in doctors] == [doctor.id]
    assert [s["day_of_week"] for s in doctors[0]["schedules"]] == [1, 2, 3, 4, 5]
    assert doctors[0]["specialty"] == "Medicina General"
