"""Shared fixtures: a small synthetic DESeq2-style experiment."""

import pytest
from tomli_w import dump as tomli_w_dump

N_GENES = 300
N_LOW = 10


def symbol(i):
    return f"G{i:03d}"


def accession(i):
    return f"ENSG{i:011d}"


@pytest.fixture
def de_results_file(tmp_path):
    """
    Three hundred expressed genes with a linear statistic plus ten barely
    detected ones. The top and bottom forty genes are significant.
    """
    lines = ["gene_id\tbaseMean\tlog2FoldChange\tlfcSE\tstat\tpvalue\tpadj"]
    for i in range(N_GENES):
        stat = 150.0 - i
        padj = 0.001 if i < 40 or i >= N_GENES - 40 else 0.5
        lines.append(
            f"{accession(i)} {symbol(i)}\t100.0\t{stat / 50}\t0.2\t{stat}\t{padj / 10}\t{padj}"
        )
    for j in range(N_LOW):
        lines.append(f"ENSGLOW{j:06d} L{j:03d}\t2.0\t0.1\t1.0\t0.5\t0.6\tNA")

    path = tmp_path / 'deseq2_results.tsv'
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def gene_sets_file(tmp_path):
    """Reactome-style GMT with one up set, one down set, one spread-out set and one tiny set."""
    sets = {
        'UP_SET': [symbol(i) for i in range(20)],
        'DOWN_SET': [symbol(i) for i in range(N_GENES - 20, N_GENES)],
        'SPREAD_SET': [symbol(i) for i in range(0, N_GENES, 15)],
        'TINY_SET': [symbol(i) for i in range(100, 105)],
    }
    path = tmp_path / 'gene_sets.gmt'
    path.write_text(
        "".join(f"{name}\t{name.lower()}\t" + "\t".join(genes) + "\n" for name, genes in sets.items())
    )
    return path


@pytest.fixture
def counts_file(tmp_path):
    """Raw counts in which only the first two hundred genes are detected."""
    lines = ["gene\tctrl1\tctrl2\tkd1\tkd2"]
    for i in range(N_GENES):
        count = 50 if i < 200 else 1
        lines.append(f"{accession(i)} {symbol(i)}\t{count}\t{count}\t{count}\t{count}")
    path = tmp_path / 'counts.tsv'
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def make_config(tmp_path, de_results_file, gene_sets_file):
    """Factory writing a pipeline configuration with optional overrides."""
    def _make(analysis=None, output=None, inputs=None):
        config = {
            'input': {
                'de_results_file': str(de_results_file),
                'gene_sets_file': str(gene_sets_file),
                **(inputs or {}),
            },
            'output': {
                'directory': str(tmp_path / 'results'),
                **(output or {}),
            },
            'analysis': {
                'permutations': 200,
                'seed': 42,
                **(analysis or {}),
            },
        }
        config_path = tmp_path / 'config.toml'
        with open(config_path, 'wb') as f:
            tomli_w_dump(config, f)
        return config_path

    return _make
