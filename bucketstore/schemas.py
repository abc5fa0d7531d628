from pydantic import BaseModel


class BucketCreate(BaseModel):
    name: str = ""


class EndpointOut(BaseModel):
    method: str
    path: str
    description: str


class HealthOut(BaseModel):
    message: str
    endpoints: list[EndpointOut]


class UploadOut(BaseModel):
    message: str
    bucket: str
    key: str
    size: int
    mimetype: str


class BucketListOut(BaseModel):
    bucket: str
    files: list[str]


class BucketsOut(BaseModel):
    buckets: list[str]


class MessageOut(BaseModel):
    message: str
