import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from bson.errors import InvalidDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.datastructures import UploadFile

from config import config
from database import ExamStore
from errors import ExamNotFound, ExamServiceError, InvalidRequest, StoreFailure
from schemas import (
    EXAM_KEY_FIELDS,
    AddQuestion,
    Exam,
    ExamUpdate,
    RemoveQuestion,
    describe_validation_error,
    is_blank,
    missing_fields,
    parse_index,
    to_str_id,
)
from storage import AssetStorage, bind_images

logger = logging.getLogger(__name__)

REQUIRED_EXAM_FIELDS = EXAM_KEY_FIELDS + ("exam",)
DUPLICATE_MESSAGE = "Exam with these details already exists"
FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def configure_logging(level: str = config.LOG_LEVEL):
    logging.basicConfig(
        level=level,
        format="{levelname} {asctime} {module} {message}",
        style="{",
    )


assets = AssetStorage(
    config.UPLOAD_DIR,
    url_prefix="/uploads",
    max_bytes=config.UPLOAD_MAX_BYTES,
    content_types=config.UPLOAD_CONTENT_TYPES,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    config.validate()
    assets.ensure_directory()
    app.state.store = await ExamStore.connect(
        config.MONGO_URI, config.MONGO_DB_NAME, config.MONGO_TIMEOUT_MS
    )
    try:
        yield
    finally:
        await app.state.store.close()


app = FastAPI(title="Exams API", lifespan=lifespan)

app.add_middleware(CORSMiddleware, **config.cors_options())

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.exception_handler(ExamServiceError)
async def exam_service_error_handler(request: Request, exc: ExamServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Dependencies
def get_store(request: Request) -> ExamStore:
    return request.app.state.store


def get_assets() -> AssetStorage:
    return assets


# Helpers
async def read_json(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise InvalidRequest("Invalid JSON body", str(e))
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return payload


def decode_questions(raw):
    """Decode the ``exam`` form field, sent as a JSON-encoded list."""
    if raw is None or isinstance(raw, UploadFile):
        return None
    if not raw.strip():
        return None
    try:
        questions = json.loads(raw)
    except ValueError as e:
        raise InvalidRequest("Invalid JSON in exam field", str(e))
    if not isinstance(questions, list):
        raise InvalidRequest("Invalid JSON in exam field", "exam must be a JSON array")
    return questions


def read_exam_form(form):
    payload = {name: form.get(name) for name in EXAM_KEY_FIELDS}
    payload["exam"] = decode_questions(form.get("exam"))
    uploads = [
        item for item in form.getlist("images") + form.getlist("image")
        if isinstance(item, UploadFile) and item.filename
    ]
    return payload, uploads


def require(payload: Dict[str, Any], fields):
    missing = missing_fields(payload, fields)
    if missing:
        raise InvalidRequest("All fields are required", f"Missing: {', '.join(missing)}")


@app.get("/", response_class=PlainTextResponse)
async def read_root():
    return "Exams API is running"


@app.get("/exams")
async def list_exams(store: ExamStore = Depends(get_store)):
    try:
        exams = await store.list_exams()
    except PyMongoError as e:
        logger.exception("Failed to list exams")
        raise StoreFailure("Failed to retrieve exams", str(e))
    return [to_str_id(e) for e in exams]


@app.post("/exams", status_code=201)
async def create_exam(
    request: Request,
    store: ExamStore = Depends(get_store),
    storage: AssetStorage = Depends(get_assets),
):
    if request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPES):
        # leaving the block closes every uploaded file in the form
        async with request.form() as form:
            payload, uploads = read_exam_form(form)
            return await save_exam(payload, uploads, store, storage)
    return await save_exam(await read_json(request), [], store, storage)


async def save_exam(payload, uploads, store: ExamStore, storage: AssetStorage):
    require(payload, REQUIRED_EXAM_FIELDS)
    try:
        exam = Exam.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest("Failed to create exam", describe_validation_error(e))

    data = exam.model_dump(exclude_none=True)
    urls = await storage.save_all(uploads[:len(data["exam"])])
    data["exam"] = bind_images(data["exam"], urls)

    try:
        doc = await store.insert_exam(data)
    except DuplicateKeyError:
        storage.discard(urls)
        raise InvalidRequest(DUPLICATE_MESSAGE)
    except (PyMongoError, InvalidDocument) as e:
        storage.discard(urls)
        logger.exception("Failed to create exam")
        raise InvalidRequest("Failed to create exam", str(e))

    logger.info("Created exam %s with %d questions", doc["_id"], len(data["exam"]))
    return {"message": "Exam created successfully", "exam": to_str_id(doc)}


@app.put("/exams/add-question")
async def add_question(request: Request, store: ExamStore = Depends(get_store)):
    payload = await read_json(request)
    require(payload, EXAM_KEY_FIELDS + ("question", "choices"))
    try:
        body = AddQuestion.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest("Invalid question", describe_validation_error(e))

    try:
        updated = await store.push_question(
            body.key_filter(), body.to_question().model_dump(exclude_none=True)
        )
    except PyMongoError as e:
        logger.exception("Failed to add question")
        raise StoreFailure("Failed to add question", str(e))
    if updated is None:
        raise ExamNotFound()

    logger.info("Appended question to exam %s", updated["_id"])
    return {"message": "Question added successfully", "updatedExam": to_str_id(updated)}


@app.delete("/exams/remove-question")
async def remove_question(
    request: Request,
    store: ExamStore = Depends(get_store),
    storage: AssetStorage = Depends(get_assets),
):
    payload = await read_json(request)
    # index 0 is a real position; only an absent or blank index counts as missing
    missing = missing_fields(payload, EXAM_KEY_FIELDS)
    if is_blank(payload.get("index")):
        missing.append("index")
    if missing:
        raise InvalidRequest("All fields are required", f"Missing: {', '.join(missing)}")

    index = parse_index(payload["index"])
    if index is None:
        raise InvalidRequest("Invalid question index")
    try:
        body = RemoveQuestion.model_validate({**payload, "index": index})
    except ValidationError as e:
        raise InvalidRequest("Invalid request", describe_validation_error(e))

    try:
        exam = await store.find_by_key(body.key_filter())
        if exam is None:
            raise ExamNotFound()
        questions = list(exam.get("exam") or [])
        if not 0 <= body.index < len(questions):
            raise InvalidRequest("Invalid question index")
        removed = questions.pop(body.index)
        updated = await store.replace_questions(exam["_id"], questions)
    except PyMongoError as e:
        logger.exception("Failed to remove question")
        raise StoreFailure("Failed to remove question", str(e))
    if updated is None:
        raise ExamNotFound()
    # an image URL reused by another question in the same exam stays on disk
    if removed.get("image") not in {q.get("image") for q in questions}:
        storage.discard_images([removed])

    logger.info("Removed question %d from exam %s", body.index, updated["_id"])
    return {"message": "Question removed successfully", "exam": to_str_id(updated)}


@app.get("/exams/{exam_id}")
async def get_exam(exam_id: str, store: ExamStore = Depends(get_store)):
    try:
        exam = await store.get_exam(exam_id)
    except PyMongoError as e:
        logger.exception("Failed to retrieve exam %s", exam_id)
        raise StoreFailure("Failed to retrieve exam", str(e))
    if exam is None:
        raise ExamNotFound()
    return to_str_id(exam)


@app.put("/exams/{exam_id}")
async def update_exam(exam_id: str, request: Request, store: ExamStore = Depends(get_store)):
    payload = await read_json(request)
    payload.pop("id", None)
    payload.pop("_id", None)

    blank = [name for name in REQUIRED_EXAM_FIELDS if name in payload and is_blank(payload[name])]
    if blank:
        raise InvalidRequest("Fields cannot be empty", f"Empty: {', '.join(blank)}")
    try:
        body = ExamUpdate.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest("Failed to update exam", describe_validation_error(e))

    try:
        updated = await store.update_exam(exam_id, body.model_dump(exclude_unset=True, exclude_none=True))
    except DuplicateKeyError:
        raise InvalidRequest(DUPLICATE_MESSAGE)
    except (PyMongoError, InvalidDocument) as e:
        logger.exception("Failed to update exam %s", exam_id)
        raise InvalidRequest("Failed to update exam", str(e))
    if updated is None:
        raise ExamNotFound()

    logger.info("Updated exam %s", exam_id)
    return to_str_id(updated)


@app.delete("/exams/{exam_id}", status_code=204)
async def delete_exam(
    exam_id: str,
    store: ExamStore = Depends(get_store),
    storage: AssetStorage = Depends(get_assets),
):
    try:
        deleted = await store.delete_exam(exam_id)
    except PyMongoError as e:
        logger.exception("Failed to delete exam %s", exam_id)
        raise StoreFailure("Failed to delete exam", str(e))
    if deleted is None:
        raise ExamNotFound()
    storage.discard_images(deleted.get("exam") or [])

    logger.info("Deleted exam %s", exam_id)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(app, host=config.HOST, port=config.PORT)
