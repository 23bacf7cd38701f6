"""Setup configuration for the RAG ingestion pipeline."""

from setuptools import setup, find_packages

setup(
    name='rag-ingest',
    version='1.0.0',
    description='Resumable document chunking, contextualization and embedding pipeline',
    author='Your Name',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.11',
    install_requires=[
        'PyYAML>=6.0',
        'click>=8.1.7',
        'tenacity>=8.2.3',
        'sentence-transformers>=2.2.2',
        'PyPDF2==3.0.1',
        'python-docx>=0.8.11',
        'chromadb>=0.4.22',
    ],
    extras_require={
        'llm': ['llama-cpp-python>=0.2.27'],
        'test': ['pytest>=7.4'],
    },
    entry_points={
        'console_scripts': [
            'rag-ingest=rag_ingest.cli:cli',
        ],
    },
)
