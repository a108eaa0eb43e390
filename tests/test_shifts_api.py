from datetime import datetime

from conftest import register_and_login, set_now


def shift_form(**overrides):
    form = {
        "date": "2024-03-15",
        "employer": "Acme",
        "site_name": "Tata Steel",
        "postal_code": "sa13 2ng ",
        "hourly_rate": 12.5,
        "start_time": "10:00",
        "hours": 8,
    }
    form.update(overrides)
    return form


def create(client, headers, **overrides):
    res = client.post("/shifts", json=shift_form(**overrides), headers=headers)
    assert res.status_code == 200, res.text
    return res.json()


def test_create_shift_derives_fields(client, auth_headers):
    shift = create(client, auth_headers, date="2024-03-10", hours=7.5, hourly_rate=12.345)

    assert shift["status"] == "pending"
    assert shift["end_time"] == "17:30"
    assert shift["total_earnings"] == 92.59

    sites = client.get("/sites", headers=auth_headers).json()
    assert sites[0]["postal_code"] == "SA13 2NG"
    employers = client.get("/employers", headers=auth_headers).json()
    assert employers[0]["default_rate"] == 12.345


def test_employer_and_site_resolved_case_insensitively(client, auth_headers):
    first = create(client, auth_headers)
    second = create(client, auth_headers, employer="  ACME ", site_name="tata steel")

    assert first["employer_id"] == second["employer_id"]
    assert first["site_id"] == second["site_id"]
    assert len(client.get("/employers", headers=auth_headers).json()) == 1


def test_default_rate_only_updated_when_asked(client, auth_headers):
    create(client, auth_headers, hourly_rate=12.5)
    create(client, auth_headers, hourly_rate=14.0)
    assert client.get("/employers", headers=auth_headers).json()[0]["default_rate"] == 12.5

    create(client, auth_headers, hourly_rate=14.0, update_default_rate=True)
    assert client.get("/employers", headers=auth_headers).json()[0]["default_rate"] == 14.0


def test_patch_employer_rate(client, auth_headers):
    create(client, auth_headers)
    emp_id = client.get("/employers", headers=auth_headers).json()[0]["id"]
    res = client.patch(f"/employers/{emp_id}", json={"default_rate": 20}, headers=auth_headers)
    assert res.json()["default_rate"] == 20
    assert client.patch("/employers/missing", json={"default_rate": 1}, headers=auth_headers).status_code == 404


def test_invalid_form_rejected(client, auth_headers):
    res = client.post("/shifts", json=shift_form(hours=0), headers=auth_headers)
    assert res.status_code == 422
    res = client.post("/shifts", json=shift_form(start_time="ten"), headers=auth_headers)
    assert res.status_code == 422


def test_patch_recomputes_earnings_and_end_time(client, auth_headers):
    shift = create(client, auth_headers)

    res = client.patch(f"/shifts/{shift['id']}", json={"hours": 10, "status": "completed"}, headers=auth_headers)
    updated = res.json()
    assert updated["total_earnings"] == 125.0
    assert updated["end_time"] == "20:00"
    assert updated["status"] == "completed"

    res = client.patch(f"/shifts/{shift['id']}", json={"end_time": "19:45"}, headers=auth_headers)
    assert res.json()["end_time"] == "19:45"
    assert res.json()["total_earnings"] == 125.0


def test_put_edits_form_but_keeps_status(client, auth_headers):
    shift = create(client, auth_headers)
    client.patch(f"/shifts/{shift['id']}", json={"status": "completed"}, headers=auth_headers)

    res = client.put(f"/shifts/{shift['id']}", json=shift_form(employer="Bolt", hours=4), headers=auth_headers)
    edited = res.json()
    assert edited["status"] == "completed"
    assert edited["employer_id"] != shift["employer_id"]
    assert edited["total_earnings"] == 50.0
    assert edited["end_time"] == "14:00"


def test_delete_shift(client, auth_headers):
    shift = create(client, auth_headers)
    assert client.delete(f"/shifts/{shift['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/shifts/{shift['id']}", headers=auth_headers).status_code == 404
    assert client.delete(f"/shifts/{shift['id']}", headers=auth_headers).status_code == 404


def test_other_users_cannot_see_shift(client, auth_headers):
    shift = create(client, auth_headers)
    bob = register_and_login(client, email="bob@example.com", name="Bob")

    assert client.get(f"/shifts/{shift['id']}", headers=bob).status_code == 404
    assert client.patch(f"/shifts/{shift['id']}", json={"status": "completed"}, headers=bob).status_code == 404
    assert client.get("/history", params={"month": "2024-03"}, headers=bob).json()["shifts"] == []


def test_clock_in_and_out_lifecycle(client, auth_headers):
    shift = create(client, auth_headers, start_time="10:00", hours=8)

    dash = client.get("/dashboard", headers=auth_headers).json()
    assert dash["active_shift"]["id"] == shift["id"]
    assert dash["can_clock_out"] is False

    res = client.post(f"/shifts/{shift['id']}/clock-in", headers=auth_headers)
    assert res.json()["status"] == "on site"

    # Second clock-in refused, clock-out gate still closed (ends 18:00)
    assert client.post(f"/shifts/{shift['id']}/clock-in", headers=auth_headers).status_code == 400
    assert client.post(f"/shifts/{shift['id']}/clock-out", headers=auth_headers).status_code == 400

    set_now(datetime(2024, 3, 15, 17, 0))
    dash = client.get("/dashboard", headers=auth_headers).json()
    assert dash["active_shift"]["status"] == "on site"
    assert dash["can_clock_out"] is True

    res = client.post(f"/shifts/{shift['id']}/clock-out", headers=auth_headers)
    assert res.json()["status"] == "completed"
    assert client.get("/dashboard", headers=auth_headers).json()["active_shift"] is None


def test_clock_in_refused_outside_window(client, auth_headers):
    shift = create(client, auth_headers, start_time="14:00")
    res = client.post(f"/shifts/{shift['id']}/clock-in", headers=auth_headers)
    assert res.status_code == 400

    later = create(client, auth_headers, date="2024-03-16", start_time="09:30")
    assert client.post(f"/shifts/{later['id']}/clock-in", headers=auth_headers).status_code == 400


def test_dashboard_month_totals_and_recent(client, auth_headers):
    create(client, auth_headers, date="2024-03-01", hours=8, hourly_rate=10)
    create(client, auth_headers, date="2024-03-02", hours=4, hourly_rate=10)
    create(client, auth_headers, date="2024-02-28", hours=8, hourly_rate=10)
    for day in range(20, 25):
        create(client, auth_headers, date=f"2024-04-{day}", hours=1, hourly_rate=10)

    dash = client.get("/dashboard", headers=auth_headers).json()
    assert dash["month"] == "2024-03"
    assert dash["total_earnings"] == 120.0
    assert dash["total_hours"] == 12.0
    assert dash["shift_count"] == 2
    assert [s["date"] for s in dash["recent_shifts"]] == [
        "2024-04-24", "2024-04-23", "2024-04-22", "2024-04-21", "2024-04-20"]


def test_history_filters_and_stats(client, auth_headers):
    a = create(client, auth_headers, date="2024-03-01", employer="Acme", site_name="Docks")
    create(client, auth_headers, date="2024-03-05", employer="Bolt", site_name="Yard")
    create(client, auth_headers, date="2024-04-01", employer="Acme", site_name="Docks")
    client.patch(f"/shifts/{a['id']}", json={"status": "completed"}, headers=auth_headers)

    res = client.get("/history", params={"month": "2024-03"}, headers=auth_headers).json()
    assert [s["date"] for s in res["shifts"]] == ["2024-03-05", "2024-03-01"]
    assert res["stats"] == {"hours": 16.0, "count": 2, "earnings": 200.0}

    res = client.get("/history", params={"month": "2024-03", "status": "completed"}, headers=auth_headers).json()
    assert [s["id"] for s in res["shifts"]] == [a["id"]]

    res = client.get("/history", params={"month": "2024-03", "employer": "bol"}, headers=auth_headers).json()
    assert [s["date"] for s in res["shifts"]] == ["2024-03-05"]

    res = client.get("/history", params={"month": "2024-03", "site": "dock"}, headers=auth_headers).json()
    assert [s["date"] for s in res["shifts"]] == ["2024-03-01"]

    assert client.get("/history", params={"month": "March"}, headers=auth_headers).status_code == 400


def test_history_defaults_to_current_month(client, auth_headers):
    create(client, auth_headers)
    res = client.get("/history", headers=auth_headers).json()
    assert res["month"] == "2024-03"
    assert res["stats"]["count"] == 1


def test_charts(client, auth_headers):
    create(client, auth_headers, date="2024-03-11", hours=8, hourly_rate=10)
    create(client, auth_headers, date="2024-03-13", hours=4, hourly_rate=10)

    res = client.get("/charts", params={"view": "week"}, headers=auth_headers)
    assert res.json() == [{"name": "11/03", "earnings": 120.0}]
    assert client.get("/charts", params={"view": "decade"}, headers=auth_headers).status_code == 422


def test_absurd_hours_do_not_break_shift_or_dashboard(client, auth_headers):
    shift = create(client, auth_headers, start_time="09:00", hours=1e8)
    assert shift["end_time"] == ""

    res = client.patch(f"/shifts/{shift['id']}", json={"hours": 2e8, "status": "on site"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["end_time"] == ""

    dash = client.get("/dashboard", headers=auth_headers)
    assert dash.status_code == 200
    assert dash.json()["active_shift"]["id"] == shift["id"]
    assert dash.json()["can_clock_out"] is False


def test_clock_out_gate_follows_edited_end_time(client, auth_headers):
    shift = create(client, auth_headers, start_time="09:00", hours=8)
    client.post(f"/shifts/{shift['id']}/clock-in", headers=auth_headers)
    assert client.get("/dashboard", headers=auth_headers).json()["can_clock_out"] is False

    client.patch(f"/shifts/{shift['id']}", json={"end_time": "10:15"}, headers=auth_headers)
    assert client.get("/dashboard", headers=auth_headers).json()["can_clock_out"] is True
    res = client.post(f"/shifts/{shift['id']}/clock-out", headers=auth_headers)
    assert res.json()["status"] == "completed"
