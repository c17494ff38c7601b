PASSWORD = "Passw0rd!"


async def register(client, email, password=PASSWORD):
    response = await client.post("/api/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


async def auth_headers(client, email, password=PASSWORD):
    body = await register(client, email, password)
    return {"Authorization": f"Bearer {body['access_token']}"}
