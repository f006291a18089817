from conftest import PASSWORD, create_wish, sign_up
from wishwall.routers import auth as auth_router


async def test_signup_creates_profile_and_session(api):
    r = await api.post(
        "/auth/signup",
        json={"email": "Amira@Example.com", "password": PASSWORD, "full_name": "Amira B", "city": ""},
    )
    assert r.status_code == 201
    data = r.json()
    assert data["token_type"] == "bearer"
    session = data["session"]
    assert session["email"] == "amira@example.com"
    assert session["is_admin"] is False
    assert session["profile"]["full_name"] == "Amira B"
    assert session["profile"]["city"] is None

    headers = {"Authorization": f"Bearer {data['access_token']}"}
    me = await api.get("/auth/session", headers=headers)
    assert me.status_code == 200
    assert me.json()["user_id"] == session["user_id"]


async def test_duplicate_email_rejected(api):
    await sign_up(api, "dup@example.com")
    r = await api.post(
        "/auth/signup",
        json={"email": "dup@example.com", "password": PASSWORD, "full_name": "Someone"},
    )
    assert r.status_code == 409


async def test_signup_validation(api):
    r = await api.post(
        "/auth/signup",
        json={"email": "not-an-email", "password": "123", "full_name": "A"},
    )
    assert r.status_code == 422
    fields = {err["loc"][-1] for err in r.json()["detail"]}
    assert {"email", "password", "full_name"} <= fields


async def test_signin_and_wrong_password(api):
    await sign_up(api, "karim@example.com")

    ok = await api.post("/auth/signin", json={"email": "karim@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["session"]["profile"]["full_name"] == "Test User"

    bad = await api.post("/auth/signin", json={"email": "karim@example.com", "password": "nope"})
    assert bad.status_code == 401


async def test_admin_flag_from_settings(api):
    headers = await sign_up(api, "admin@example.com", "The Admin")
    me = await api.get("/auth/session", headers=headers)
    assert me.json()["is_admin"] is True


async def test_signout_revokes_token(api):
    headers = await sign_up(api, "leila@example.com")
    r = await api.post("/auth/signout", headers=headers)
    assert r.status_code == 204

    after = await api.get("/auth/session", headers=headers)
    assert after.status_code == 401


async def test_missing_and_garbage_tokens(api):
    assert (await api.get("/auth/session")).status_code == 401
    r = await api.get("/auth/session", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


async def test_stale_token_reads_public_wall_anonymously(api):
    author = await sign_up(api, "author@example.com")
    await create_wish(api, author)
    stale = await sign_up(api, "leila@example.com")
    await api.post("/auth/signout", headers=stale)

    public = await api.get("/wishes/public", headers=stale)
    assert public.status_code == 200
    assert len(public.json()) == 1
    assert public.json()[0]["liked_by_me"] is False

    assert (await api.get("/wishes/mine", headers=stale)).status_code == 401
    garbage = {"Authorization": "Bearer garbage"}
    assert (await api.get("/wishes/public", headers=garbage)).status_code == 200


async def test_concurrent_signup_with_same_email_conflicts(api, monkeypatch):
    # Both requests pass the existence check; the unique index decides
    async def never_taken(db, email):
        return False

    monkeypatch.setattr(auth_router, "_email_taken", never_taken)
    await sign_up(api, "twin@example.com")

    r = await api.post(
        "/auth/signup",
        json={"email": "twin@example.com", "password": PASSWORD, "full_name": "Twin Two"},
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "Email is already registered"
