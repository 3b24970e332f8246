# tests/test_boards.py - Board router tests
import pytest
from httpx import AsyncClient
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Board, Task, TaskComment, TaskStatus
from tests.conftest import get_auth_headers


async def _add_task(db_session, board, creator, title, status=TaskStatus.PENDING, order=1):
    task = Task(title=title, org_id=board.org_id, board_id=board.id, created_by=creator.id,
                status=status, order=order)
    db_session.add(task)
    await db_session.commit()
    return task


@pytest.mark.asyncio
async def test_create_board(client: AsyncClient, test_org, test_user, test_department):
    resp = await client.post(
        "/api/boards",
        json={"name": "Backlog", "org_id": test_org.id, "department_id": test_department.id},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Backlog"
    assert data["created_by"]["id"] == test_user.id
    assert data["tasks"] == []


@pytest.mark.asyncio
async def test_create_board_missing_fields(client: AsyncClient, test_org, test_user):
    resp = await client.post(
        "/api/boards",
        json={"name": "Backlog", "org_id": test_org.id},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Name, orgId, and departmentId are required."


@pytest.mark.asyncio
async def test_create_board_in_other_org_forbidden(client: AsyncClient, test_org, outsider):
    resp = await client.post(
        "/api/boards",
        json={"name": "Sneaky", "org_id": test_org.id, "department_id": "d1"},
        headers=get_auth_headers(outsider),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_boards_by_org(client: AsyncClient, db_session, test_org, admin_user, test_board):
    db_session.add(Board(name="Other dept", created_by=admin_user.id, org_id=test_org.id,
                         department_id="other", order=5))
    await db_session.commit()
    await _add_task(db_session, test_board, admin_user, "Card")

    resp = await client.get(f"/api/boards/{test_org.id}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 200
    names = [b["name"] for b in resp.json()]
    assert names == ["Sprint 1", "Other dept"]
    assert resp.json()[0]["created_by"]["name"] == admin_user.name
    assert [t["title"] for t in resp.json()[0]["tasks"]] == ["Card"]


@pytest.mark.asyncio
async def test_list_boards_department_filter(client: AsyncClient, db_session, test_org, admin_user,
                                             test_board, test_department):
    db_session.add(Board(name="Other dept", created_by=admin_user.id, org_id=test_org.id, department_id="other"))
    await db_session.commit()
    headers = get_auth_headers(admin_user)

    resp = await client.get(f"/api/boards/{test_org.id}", params={"department_id": test_department.id},
                            headers=headers)
    assert [b["name"] for b in resp.json()] == ["Sprint 1"]

    resp = await client.get(f"/api/boards/{test_org.id}", params={"department_id": "null"}, headers=headers)
    assert len(resp.json()) == 2


@pytest.mark.asyncio
async def test_list_boards_other_org_forbidden(client: AsyncClient, test_org, outsider, test_board):
    resp = await client.get(f"/api/boards/{test_org.id}", headers=get_auth_headers(outsider))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_delete_board_cascades_tasks(client: AsyncClient, db_session, admin_user, test_user, test_board):
    first = await _add_task(db_session, test_board, admin_user, "One", order=1)
    await _add_task(db_session, test_board, admin_user, "Two", order=2)
    db_session.add(TaskComment(task_id=first.id, author_id=test_user.id, text="hi"))
    await db_session.commit()

    resp = await client.delete(f"/api/boards/{test_board.id}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 200

    tasks = (await db_session.execute(
        select(func.count(Task.id)).where(Task.board_id == test_board.id)
    )).scalar()
    boards = (await db_session.execute(
        select(func.count(Board.id)).where(Board.id == test_board.id)
    )).scalar()
    comments = (await db_session.execute(select(func.count(TaskComment.id)))).scalar()
    assert (tasks, boards, comments) == (0, 0, 0)


@pytest.mark.asyncio
async def test_delete_board_store_failure_rolls_back(client: AsyncClient, db_session, admin_user, test_board,
                                                    monkeypatch):
    await _add_task(db_session, test_board, admin_user, "Kept")

    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    resp = await client.delete(f"/api/boards/{test_board.id}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 500
    body = resp.json()
    assert body["detail"] == "Server error"
    assert "disk I/O error" in body["error"]

    count = (await db_session.execute(select(func.count(Task.id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_delete_missing_board(client: AsyncClient, db_session, admin_user, test_board):
    await _add_task(db_session, test_board, admin_user, "Survivor")
    resp = await client.delete("/api/boards/does-not-exist", headers=get_auth_headers(admin_user))
    assert resp.status_code == 404

    count = (await db_session.execute(select(func.count(Task.id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_delete_board_other_org_forbidden(client: AsyncClient, outsider, test_board):
    resp = await client.delete(f"/api/boards/{test_board.id}", headers=get_auth_headers(outsider))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_fetch_board_tasks_status_filter(client: AsyncClient, db_session, admin_user, test_board):
    await _add_task(db_session, test_board, admin_user, "Todo", order=1)
    await _add_task(db_session, test_board, admin_user, "Done", status=TaskStatus.COMPLETED, order=2)
    headers = get_auth_headers(admin_user)

    resp = await client.get(f"/api/boards/{test_board.id}/tasks", params={"status": "Completed"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["count"] == 1
    assert resp.json()["tasks"][0]["title"] == "Done"

    resp = await client.get(f"/api/boards/{test_board.id}/tasks", params={"status": "All"}, headers=headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["Todo", "Done"]
