from flask import Flask, request, jsonify, send_file
import argparse
import io
import logging
import os
import time
from werkzeug.exceptions import HTTPException

from imgproc.imaging import ImageDecodeError, decode_image, encode_png, to_data_url_png
from imgproc.techniques import UnknownTechniqueError, apply_technique, list_techniques, resolve_technique

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DOWNLOAD_NAME = 'processed-image.png'
DEFAULT_MAX_UPLOAD_MB = 16


def max_upload_bytes():
    """Upload limit from IMGPROC_MAX_UPLOAD_MB (fractions allowed)."""
    raw = os.environ.get('IMGPROC_MAX_UPLOAD_MB', str(DEFAULT_MAX_UPLOAD_MB))
    try:
        mb = float(raw)
    except ValueError:
        raise ValueError(f"IMGPROC_MAX_UPLOAD_MB must be a number of megabytes, got {raw!r}") from None
    if not 0 < mb < float('inf'):
        raise ValueError(f"IMGPROC_MAX_UPLOAD_MB must be positive, got {raw!r}")
    return int(mb * 1024 * 1024)


app = Flask(__name__, static_folder=os.path.join(BASE_DIR, 'static'))
app.config['MAX_CONTENT_LENGTH'] = max_upload_bytes()


class MissingUpload(ValueError):
    pass


@app.route('/')
def index():
    return send_file(os.path.join(BASE_DIR, 'index.html'))

# browsers ask for it on every page load
@app.route('/favicon.ico')
def favicon():
    return ('', 204)

@app.route('/api/techniques')
def api_techniques():
    return jsonify(list_techniques())

@app.errorhandler(413)
def request_entity_too_large(error):
    limit_mb = app.config['MAX_CONTENT_LENGTH'] / (1024 * 1024)
    return jsonify({'error': f'File too large. Maximum size is {limit_mb:g}MB.'}), 413


def _run_from_request():
    """Read file + technique from the form, run it, return (result, params)."""
    f = request.files.get('file')
    if not f:
        raise MissingUpload('missing file')
    technique = resolve_technique(request.form.get('technique'))
    img = decode_image(f.read())

    start = time.perf_counter()
    dst, params = apply_technique(img, technique)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    app.logger.info("%s on %s image %r took %.1f ms", technique, 'x'.join(str(d) for d in img.shape), f.filename, elapsed_ms)
    return dst, params


def _handle(respond):
    try:
        dst, params = _run_from_request()
        return respond(dst, params)
    except (MissingUpload, UnknownTechniqueError, ImageDecodeError) as e:
        app.logger.warning("rejected %s: %s", request.path, e)
        return jsonify({'error': str(e)}), 400
    except HTTPException:
        # e.g. 413 from the upload limit; let its errorhandler answer
        raise
    except Exception as e:
        app.logger.exception("Error processing image")
        return jsonify({'error': str(e)}), 500


@app.route('/api/process', methods=['POST'])
def api_process():
    def respond(dst, params):
        return jsonify({
            'dataURL': to_data_url_png(dst),
            'message': f"Processed: {params['technique']}",
            'technique': params['technique'],
            'params': params,
        }), 200
    return _handle(respond)

@app.route('/api/download', methods=['POST'])
def api_download():
    def respond(dst, params):
        buf = io.BytesIO(encode_png(dst))
        return send_file(buf, mimetype='image/png', as_attachment=True, download_name=DOWNLOAD_NAME)
    return _handle(respond)


def main():
    parser = argparse.ArgumentParser(description="Image processing & segmentation web server.")
    parser.add_argument("--host", default=os.environ.get('IMGPROC_HOST', '0.0.0.0'))
    parser.add_argument("--port", type=int, default=int(os.environ.get('IMGPROC_PORT', '5500')))
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    app.run(host=args.host, port=args.port, debug=args.debug)

if __name__ == '__main__':
    main()
