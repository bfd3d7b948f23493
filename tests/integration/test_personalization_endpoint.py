from tests.fakes import SESSION_COOKIE


def test_personalize_with_explicit_background(client, fake_provider) -> None:
    fake_provider.reply = "Adapted for you"

    response = client.post(
        "/api/personalize",
        json={
            "content": "PID controllers tune feedback.",
            "userBackground": {
                "experienceLevel": "beginner",
                "softwareBackground": "JavaScript",
                "hardwareBackground": "",
            },
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "personalizedContent": "Adapted for you",
        "userLevel": "beginner",
    }
    prompt = fake_provider.chat_calls[0]["messages"][0]["content"]
    assert "Software background: JavaScript" in prompt


def test_personalize_falls_back_to_session_profile(client, fake_provider, auth_calls) -> None:
    response = client.post(
        "/api/personalize",
        json={"content": "Lidar measures distance."},
        headers={"Cookie": SESSION_COOKIE},
    )

    assert response.status_code == 200
    assert response.json()["userLevel"] == "advanced"
    assert auth_calls[0].url.path == "/api/auth/get-session"
    assert "Python and ROS 2" in fake_provider.chat_calls[0]["messages"][0]["content"]


def test_personalize_without_background_or_session_is_rejected(client, fake_provider) -> None:
    response = client.post("/api/personalize", json={"content": "Lidar measures distance."})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "user_background_required"
    assert body["error"] == "User background is required"
    assert fake_provider.chat_calls == []
