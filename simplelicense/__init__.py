"""
SimpleLicense: signed, schema-driven license files.

Layout
──────

    core.py            Field-name constants, errors, hashing and timestamp helpers
    fields.py          Field registry: per-field validators and serializers
    document.py        LicenseDocument and its wire JSON form
    canonical.py       Deterministic canonical bytes used as signing input
    keys.py            RSA key generation, PEM loading
    signing.py         LicenseSigner / LicenseVerifier (PSS or PKCS#1 v1.5)
    canonicalizers.py  Text canonicalizers for hashed input files
    hashing.py         SHA-256 of raw or canonicalized files
    schema.py          LicenseSchema, FieldDescriptor, LicenseValidator
    processors.py      Field processors (HashFiles, GenerateGuid, ...)
    creator.py         LicenseCreator: schema-driven and schema-less creation
    config.py          YAML / environment configuration
    cli.py             ``simplelicense`` command line

A license round trip::

    doc = LicenseCreator().create_license(schema, values)
    LicenseSigner(private_pem).sign(doc)
    text = doc.to_wire_json()
    LicenseVerifier(public_pem).verify_json(text)  # -> VerificationResult(True, None)
"""

__version__ = "0.1.0"

from simplelicense.core import (
    EXPIRY_FIELD,
    LICENSE_ID_FIELD,
    MANDATORY_FIELDS,
    SIGNATURE_FIELD,
    CanonicalizationError,
    ConfigError,
    KeyFormatError,
    LicenseError,
    LicenseFormatError,
    LicenseValidationError,
    ProcessorError,
    SchemaError,
    SignatureFormatError,
    SigningError,
)
from simplelicense.fields import FieldRegistry, ValidationResult
from simplelicense.document import LicenseDocument
from simplelicense.canonical import encode
from simplelicense.keys import generate_key_pair, load_private_key, load_public_key
from simplelicense.signing import (
    LicenseSigner,
    LicenseVerifier,
    PaddingScheme,
    VerificationResult,
    sign_document,
    verify_document,
    verify_document_json,
)
from simplelicense.canonicalizers import (
    CanonicalizerRegistry,
    FileCanonicalizer,
    GenericTextCanonicalizer,
    InpCanonicalizer,
)
from simplelicense.hashing import hash_file, hash_files
from simplelicense.schema import FieldDescriptor, LicenseSchema, LicenseValidator
from simplelicense.processors import ProcessorContext, ProcessorRegistry
from simplelicense.creator import FolderFileSource, LicenseCreator, ListFileSource

__all__ = [
    "__version__",
    # Constants
    "EXPIRY_FIELD",
    "LICENSE_ID_FIELD",
    "MANDATORY_FIELDS",
    "SIGNATURE_FIELD",
    # Errors
    "CanonicalizationError",
    "ConfigError",
    "KeyFormatError",
    "LicenseError",
    "LicenseFormatError",
    "LicenseValidationError",
    "ProcessorError",
    "SchemaError",
    "SignatureFormatError",
    "SigningError",
    # Documents
    "FieldRegistry",
    "LicenseDocument",
    "ValidationResult",
    "encode",
    # Keys and signatures
    "LicenseSigner",
    "LicenseVerifier",
    "PaddingScheme",
    "VerificationResult",
    "generate_key_pair",
    "load_private_key",
    "load_public_key",
    "sign_document",
    "verify_document",
    "verify_document_json",
    # File hashing
    "CanonicalizerRegistry",
    "FileCanonicalizer",
    "GenericTextCanonicalizer",
    "InpCanonicalizer",
    "hash_file",
    "hash_files",
    # Schemas and creation
    "FieldDescriptor",
    "FolderFileSource",
    "LicenseCreator",
    "LicenseSchema",
    "LicenseValidator",
    "ListFileSource",
    "ProcessorContext",
    "ProcessorRegistry",
]
