import io
import json
import zipfile

from signproof.capture.raster import decode_data_url
from signproof.schemas.evidence import EvidencePackage, ValidationResult

EVIDENCE_JSON = "evidence.json"
SIGNATURE_PNG = "signature.png"
VALIDATION_JSON = "validation.json"


def archive_filename(package: EvidencePackage) -> str:
    return f"evidencias-{package.contract_id}-{package.id}.zip"


def build_evidence_archive(package: EvidencePackage, validation: ValidationResult) -> bytes:
    """ZIP com o pacote (JSON camelCase), a imagem PNG da assinatura e o resultado da validação."""
    try:
        image_bytes: bytes | None = decode_data_url(package.signature_image)[0]
    except ValueError:
        # imagem corrompida: o relatório de validação já registra o defeito
        image_bytes = None
    evidence = package.model_dump(mode="json", by_alias=True)
    report = validation.model_dump(mode="json", by_alias=True)

    zip_buffer = io.BytesIO()
    with zipfile.ZipFile(zip_buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(EVIDENCE_JSON, json.dumps(evidence, ensure_ascii=False, indent=2))
        if image_bytes is not None:
            archive.writestr(SIGNATURE_PNG, image_bytes)
        archive.writestr(VALIDATION_JSON, json.dumps(report, ensure_ascii=False, indent=2))
    return zip_buffer.getvalue()
