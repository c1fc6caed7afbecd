"""FastAPI dependencies for the services built at startup (see main.lifespan)."""

from typing import Annotated

from fastapi import Depends, Request

from services.certificates_service import CertificateGenerator
from services.contracts import TemplateStore


def get_certificate_generator(request: Request) -> CertificateGenerator:
    return request.app.state.certificate_generator


def get_template_store(request: Request) -> TemplateStore:
    return request.app.state.template_store


Generator = Annotated[CertificateGenerator, Depends(get_certificate_generator)]
Templates = Annotated[TemplateStore, Depends(get_template_store)]
