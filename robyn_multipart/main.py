"""robyn-multipart - multipart/form-data uploads for Robyn."""

from robyn import Robyn

from robyn_multipart.core.logger import LogIcon, logger
from robyn_multipart.core.router import Router
from robyn_multipart.core.settings import settings as st
from robyn_multipart.middlewares.multipart import multipart
from robyn_multipart.models.core import FormData, UploadFile
from robyn_multipart.storage.disk import DiskStorage
from robyn_multipart.storage.memory import MemoryStorage

app = Robyn(__file__)

upload_router = Router(__file__, prefix="/files")
upload_router.middleware_handler.register(
    multipart(MemoryStorage(), endpoints=["/files/upload"]),
).register(
    multipart(DiskStorage(destination=st.UPLOAD_PATH), endpoints=["/files/store"]),
)


@upload_router.post("/upload")
async def upload(files: UploadFile, form: FormData):
    """Buffer uploaded files in memory and report their sizes."""
    return {
        "files": [{"field": f.field_name, "name": f.original_filename, "size": f.size} for f in files],
        "fields": form,
    }


@upload_router.post("/store")
async def store(files: UploadFile, form: FormData):
    """Write uploaded files under the upload directory."""
    return {
        "files": [
            {"field": f.field_name, "name": f.original_filename, "path": str(f.path), "size": f.size} for f in files
        ],
        "fields": form,
    }


app.include_router(upload_router)


def main() -> None:
    logger.info("Starting server", icon=LogIcon.START, app=st.API_NAME, version=st.API_VERSION, url=st.api_url)
    st.UPLOAD_PATH.mkdir(parents=True, exist_ok=True)
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()
