import pytest
from aiohttp import ClientError

from conftest import DummyResp, DummySession
from propagation_tracker.api import LabApiClient
from propagation_tracker.config import TrackerConfig
from propagation_tracker.const import MESSAGE_CODE_DUPLICATE_ALLOWED, MESSAGE_CODE_NEW, MESSAGE_CODE_TAKEN
from propagation_tracker.exceptions import LabApiError
from propagation_tracker.models import EntityKind, NotificationFilters, PredictionInput

pytestmark = pytest.mark.asyncio

BASE = "http://lab.test/api"


def make_client(responses, **options):
    config = TrackerConfig(base_url=BASE, token="tok", max_retries=options.pop("max_retries", 2), **options)
    session = DummySession(responses)
    return LabApiClient(config, session=session, initial_delay=0), session


async def test_retry_then_success(sleeps):
    client, session = make_client([DummyResp(503), DummyResp(200, {"ok": True})])

    assert await client.request("GET", "notifications/") == {"ok": True}
    assert len(session.calls) == 2
    assert len(sleeps) == 1
    assert session.calls[0]["url"] == f"{BASE}/notifications/"
    assert session.calls[0]["headers"]["Authorization"] == "Bearer tok"


async def test_retry_exhaustion_raises_network_error(sleeps):
    client, session = make_client([DummyResp(500), DummyResp(500)], max_retries=1)

    with pytest.raises(LabApiError) as excinfo:
        await client.request("GET", "notifications/")
    assert excinfo.value.reason == "network"
    assert excinfo.value.status == 500
    assert len(session.calls) == 2


async def test_connection_errors_are_retried(sleeps):
    client, session = make_client([ClientError("reset"), ClientError("reset"), DummyResp(200, [])])

    assert await client.request("GET", "notifications/") == []
    assert len(session.calls) == 3
    assert len(sleeps) == 2


async def test_client_error_status_is_not_retried(sleeps):
    client, session = make_client([DummyResp(400, {"error": "estado invalido"})])

    with pytest.raises(LabApiError) as excinfo:
        await client.request("POST", "germinaciones/1/cambiar-estado/", json={"estado": "X"})
    assert str(excinfo.value) == "estado invalido"
    assert excinfo.value.status == 400
    assert len(session.calls) == 1
    assert sleeps == []


async def test_empty_body_decodes_to_none(sleeps):
    client, _ = make_client([DummyResp(204), DummyResp(200, ValueError("not json"))])
    assert await client.request("POST", "notifications/1/archivar/") is None
    assert await client.request("POST", "notifications/1/archivar/") is None


async def test_unknown_germination_code_is_new():
    client, session = make_client([DummyResp(404, {"detail": "Not found."})])

    result = await client.check_code(EntityKind.GERMINATION, " GER-1 ")

    assert result == {"available": True, "message": MESSAGE_CODE_NEW}
    assert session.calls[0]["url"] == f"{BASE}/germinaciones/buscar-por-codigo/"
    assert session.calls[0]["params"] == {"codigo": "GER-1"}


async def test_existing_germination_code_is_still_available():
    client, _ = make_client([DummyResp(200, {"id": 3, "codigo": "GER-1"})])
    result = await client.check_code(EntityKind.GERMINATION, "GER-1")
    assert result == {"available": True, "message": MESSAGE_CODE_DUPLICATE_ALLOWED}


async def test_existing_pollination_code_is_taken():
    client, session = make_client([DummyResp(200, {"id": 3, "codigo": "POL-1"})])
    result = await client.check_code(EntityKind.POLLINATION, "POL-1")
    assert result == {"available": False, "message": MESSAGE_CODE_TAKEN}
    assert session.calls[0]["url"] == f"{BASE}/polinizaciones/buscar-por-codigo/"


async def test_blank_code_is_not_sent():
    client, session = make_client([])
    result = await client.check_code(EntityKind.POLLINATION, "  ")
    assert result["available"] is False
    assert session.calls == []


async def test_predict_posts_inputs_for_kind():
    body = {"prediccion": {"dias_estimados": 20, "fecha_estimada": "2026-05-01"}}
    client, session = make_client([DummyResp(200, body)])
    inputs = PredictionInput("aurea", "Cattleya", "2026-04-11", "I", extras=(("ubicacion", "vivero"),))

    result = await client.predict(EntityKind.POLLINATION, inputs)

    call = session.calls[0]
    assert call["url"] == f"{BASE}/predicciones/polinizacion/inicial/"
    assert call["json"] == {
        "especie": "aurea",
        "genero": "Cattleya",
        "clima": "I",
        "fecha_polinizacion": "2026-04-11",
        "ubicacion": "vivero",
    }
    assert result.estimated_days == 20
    assert result.estimated_date.isoformat() == "2026-05-01"


async def test_fetch_entity_parses_status():
    body = {"id": 9, "estado_germinacion": "FINALIZADO", "estado": "INICIAL"}
    client, session = make_client([DummyResp(200, body)])

    status = await client.fetch_entity(EntityKind.GERMINATION, "9")

    assert session.calls[0]["url"] == f"{BASE}/germinaciones/9/"
    assert status.status == "FINALIZADO"
    assert status.entity_id == "9"


async def test_germination_status_change_uses_dedicated_endpoint():
    client, session = make_client([DummyResp(200, {})])

    status = await client.mutate_entity_status(
        EntityKind.GERMINATION, "5", "finalizado", {"fecha_germinacion": "2026-01-02"}
    )

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == f"{BASE}/germinaciones/5/cambiar-estado/"
    assert call["json"] == {"estado": "FINALIZADO", "fecha_germinacion": "2026-01-02"}
    assert status.status == "FINALIZADO"
    assert status.kind is EntityKind.GERMINATION


async def test_pollination_status_change_patches_record():
    client, session = make_client([DummyResp(200, {"id": 5, "estado": "LISTA", "fechamad": "2026-03-01"})])

    status = await client.mutate_entity_status(
        EntityKind.POLLINATION, "5", "LISTA", {"fechamad": "2026-03-01"}
    )

    assert session.calls[0]["method"] == "PATCH"
    assert session.calls[0]["url"] == f"{BASE}/polinizaciones/5/"
    assert status.status == "LISTA"
    assert status.last_known_date.isoformat() == "2026-03-01"


@pytest.mark.parametrize(
    "body",
    [
        [{"id": 1}, {"id": 2}],
        {"notificaciones": [{"id": 1}, {"id": 2}]},
        {"results": [{"id": 1}, "junk", {"id": 2}, {"titulo": "no id"}]},
    ],
)
async def test_list_notifications_accepts_known_shapes(body):
    client, _ = make_client([DummyResp(200, body)])
    records = await client.list_notifications()
    assert [record.id for record in records] == ["1", "2"]


async def test_list_notifications_sends_filters():
    client, session = make_client([DummyResp(200, [])])
    await client.list_notifications(NotificationFilters(unread_only=True, search=" polen "))
    assert session.calls[0]["params"] == {"solo_no_leidas": "true", "search": "polen"}


async def test_notification_actions():
    client, session = make_client(
        [
            DummyResp(200, {"count": 4}),
            DummyResp(200, {"favorita": True}),
            DummyResp(200, {"ok": True}),
            DummyResp(200, {"total": 3, "no_leidas": 1}),
        ]
    )

    assert await client.mark_all_notifications_read() == 4
    assert await client.toggle_notification_favorite("8") is True
    await client.archive_notification("8")
    assert await client.notification_stats() == {"total": 3, "no_leidas": 1}
    assert [call["url"] for call in session.calls] == [
        f"{BASE}/notifications/marcar-todas-leidas/",
        f"{BASE}/notifications/8/toggle-favorita/",
        f"{BASE}/notifications/8/archivar/",
        f"{BASE}/notifications/estadisticas/",
    ]


async def test_notification_stats_ignores_unexpected_body():
    client, session = make_client([DummyResp(200, {"total": 3, "no_leidas": 1}), DummyResp(200, [3, 1])])

    assert await client.notification_stats() == {"total": 3, "no_leidas": 1}
    assert await client.notification_stats() == {}
    assert [call["method"] for call in session.calls] == ["GET", "GET"]
    assert session.calls[1]["url"] == f"{BASE}/notifications/estadisticas/"


async def test_toggle_favorite_requires_flag():
    client, _ = make_client([DummyResp(200, {"ok": True})])
    with pytest.raises(LabApiError):
        await client.toggle_notification_favorite("8")


async def test_close_leaves_injected_session_open():
    client, session = make_client([])
    async with client:
        pass
    assert not session.closed
