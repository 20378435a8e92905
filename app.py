#!/usr/bin/env python3
"""
Action Resolver - Flask Web Application
API REST que expõe o resolver de ações com tratamento robusto de erros.
"""

import logging
import os
from pathlib import Path

from flask import Flask, jsonify, request
from flask_cors import CORS

from action_resolver.conditions import registered_subtypes
from action_resolver.console import setup_logging
from action_resolver.engine import ActionResolver
from action_resolver.logic import CONNECTIVES
from action_resolver.models import AXES, ResolverConfig

__version__ = '1.0.0'

# Configuração de logging
setup_logging(logging.INFO)
logger = logging.getLogger(__name__)


def load_config() -> ResolverConfig:
    """Carrega a configuração indicada por RESOLVER_CONFIG, se existir."""
    config_path = Path(os.environ.get('RESOLVER_CONFIG', 'config.json'))
    if config_path.exists():
        logger.info(f"Configuração carregada de {config_path}")
        return ResolverConfig.from_file(config_path)
    return ResolverConfig()


# Inicialização do Flask
app = Flask(__name__)
CORS(app)

# Resolver sem estado (compartilhado entre threads)
resolver = ActionResolver(load_config())


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/action-resolver', methods=['POST'])
def api_action_resolver():
    """
    Resolve os números de uma estratégia a partir do histórico.

    Request Body:
        - selectionMode: str - "auto" | "hybrid" | "manual"
        - historyInput: str | list - Resultados (mais recente por último)
        - nodes: list - Nós signal/condition/logic
        - connections: list - Arestas {from, to}
        - gating: dict - Sobrescreve limites do nó de sinal

    Response:
        - success: bool
        - mode: str
        - derivedNumbers: list
        - gated: bool
        - gateReasons: list
        - telemetry: dict
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'success': False, 'error': 'Request body must be a JSON object'}), 400

        result = resolver.resolve(data)
        if not result.success:
            return jsonify(result.to_dict()), 400

        return jsonify(result.to_dict())

    except Exception as e:
        logger.exception(f"Erro no resolver: {e}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


@app.route('/api/conditions', methods=['GET'])
def api_conditions():
    """Lista os subtipos de condição e eixos disponíveis."""
    return jsonify({
        'success': True,
        'conditions': registered_subtypes(),
        'axes': {name: list(axis.values) for name, axis in AXES.items()},
        'connectives': list(CONNECTIVES),
    })


@app.route('/api/health', methods=['GET'])
def api_health():
    """Health check endpoint."""
    return jsonify({'status': 'healthy', 'version': __version__})


# ============================================================================
# HANDLERS DE ERRO
# ============================================================================

@app.errorhandler(404)
def not_found(error):
    """Handler para erro 404."""
    return jsonify({'success': False, 'error': 'Resource not found'}), 404


@app.errorhandler(405)
def method_not_allowed(error):
    """Handler para erro 405."""
    return jsonify({'success': False, 'error': 'Method not allowed'}), 405


@app.errorhandler(500)
def internal_error(error):
    """Handler para erro 500."""
    logger.exception("Erro interno do servidor")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


# ============================================================================
# PONTO DE ENTRADA
# ============================================================================

if __name__ == '__main__':
    print("\n" + "=" * 70)
    print(f"Action Resolver - API v{__version__}")
    print("=" * 70)
    print("\nServidor iniciando...")
    print("Endpoint: POST http://localhost:5000/api/action-resolver")
    print("\nPressione CTRL+C para encerrar")
    print("=" * 70 + "\n")

    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', host='0.0.0.0', port=5000)
