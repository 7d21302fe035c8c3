import io
import socket
import tarfile
import zipfile


def get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def make_zip(member: str, payload: bytes) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(member, payload)
    return buffer.getvalue()


def bucket_listing(keys: dict[str, int]) -> str:
    """Builds a ListBucketResult document for the given key -> size mapping."""
    contents = "".join(
        f"<Contents><Key>{key}</Key><Generation>1</Generation>"
        f"<LastModified>2018-06-07T19:34:00.000Z</LastModified>"
        f"<Size>{size}</Size></Contents>"
        for key, size in keys.items()
    )
    return (
        "<?xml version='1.0' encoding='UTF-8'?>"
        '<ListBucketResult xmlns="http://doc.s3.amazonaws.com/2006-03-01">'
        f"<Name>bucket</Name>{contents}</ListBucketResult>"
    )


def make_tar_gz(member: str, payload: bytes) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        info = tarfile.TarInfo(member)
        info.size = len(payload)
        archive.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()
