def test_login_and_me(client, make_user):
    student = make_user("FEMALE", username="sv01")

    resp = client.post("/auth/login", json={"username": "sv01", "password": "123456"})
    assert resp.status_code == 200
    assert resp.get_json()["user"] == {"id": student.id, "role": "student"}

    me = client.get("/auth/me").get_json()
    assert me["gender"] == "FEMALE"

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_wrong_password(client, make_user):
    make_user(username="sv02")
    resp = client.post("/auth/login", json={"username": "sv02", "password": "sai"})
    assert resp.status_code == 401


def test_locked_account(client, make_user):
    make_user(username="sv03", status="banned")
    resp = client.post("/auth/login", json={"username": "sv03", "password": "123456"})
    assert resp.status_code == 403


def test_switching_session_user(login_as, make_user, manager):
    student = make_user()

    assert login_as(student).get("/auth/me").get_json()["id"] == student.id
    me = login_as(manager).get("/auth/me").get_json()
    assert (me["id"], me["role"]) == (manager.id, "manager")
