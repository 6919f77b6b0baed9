"""
Technique catalogue and dispatch.

Each technique is a single OpenCV call (or a short fixed sequence of calls);
the constants match what the page has always used, so results are the
same whether the image is processed from the browser or from the command line.

Example:
  python -m imgproc.techniques --input photo.jpg --technique otsu --output mask.png
"""

import argparse

import cv2

from imgproc.imaging import ImageDecodeError, decode_image, to_gray

GAUSSIAN = 'Gaussian Blur'
MEDIAN = 'Median Filter'
CANNY = 'Canny Edge Detection'
LAPLACIAN = 'Laplacian Spatial Filter'
BINARY = 'Binary Thresholding'
OTSU = "Otsu's Thresholding"
MORPHOLOGICAL = 'Morphological Cleaning'

TECHNIQUES = {
    'filtering': [GAUSSIAN, MEDIAN, CANNY, LAPLACIAN],
    'segmentation': [BINARY, OTSU, MORPHOLOGICAL],
}

ALIASES = {
    'gaussian': GAUSSIAN,
    'median': MEDIAN,
    'canny': CANNY,
    'laplacian': LAPLACIAN,
    'binary': BINARY,
    'otsu': OTSU,
    'morphological': MORPHOLOGICAL,
}

KERNEL_SIZE = 5
BINARY_THRESHOLD = 127


class UnknownTechniqueError(ValueError):
    pass


def list_techniques():
    return {group: list(names) for group, names in TECHNIQUES.items()}


def resolve_technique(name):
    """Map a display name or slug to its display name."""
    key = (name or '').strip().lower()
    if not key:
        raise UnknownTechniqueError("missing technique")
    if key in ALIASES:
        return ALIASES[key]
    for names in TECHNIQUES.values():
        for display in names:
            if display.lower() == key:
                return display
    raise UnknownTechniqueError(f"unknown technique: {name!r}")


def apply_technique(img, technique):
    """
    Run one technique on a decoded image.

    Returns (result, params): result is a uint8 array, 2D for the edge and
    segmentation techniques; params describes the OpenCV call for the client.
    The input array is never written to.
    """
    technique = resolve_technique(technique)

    if technique == GAUSSIAN:
        dst = cv2.GaussianBlur(img, (KERNEL_SIZE, KERNEL_SIZE), 0, sigmaY=0, borderType=cv2.BORDER_DEFAULT)
        params = {'method': 'GaussianBlur', 'ksize': KERNEL_SIZE, 'sigma': 0}

    elif technique == MEDIAN:
        dst = cv2.medianBlur(img, KERNEL_SIZE)
        params = {'method': 'medianBlur', 'ksize': KERNEL_SIZE}

    elif technique == CANNY:
        gray = to_gray(img)
        dst = cv2.Canny(gray, 50, 150, apertureSize=3, L2gradient=False)
        params = {'method': 'Canny', 'threshold1': 50, 'threshold2': 150, 'aperture': 3}

    elif technique == LAPLACIAN:
        gray = to_gray(img)
        dst = cv2.Laplacian(gray, cv2.CV_8U, ksize=1, scale=1, delta=0, borderType=cv2.BORDER_DEFAULT)
        params = {'method': 'Laplacian', 'ksize': 1}

    elif technique == BINARY:
        gray = to_gray(img)
        _, dst = cv2.threshold(gray, BINARY_THRESHOLD, 255, cv2.THRESH_BINARY)
        params = {'method': 'threshold', 'threshold': BINARY_THRESHOLD}

    elif technique == OTSU:
        gray = to_gray(img)
        T, dst = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        # Otsu picks the threshold itself; report it back
        params = {'method': 'threshold+otsu', 'threshold': float(T)}

    else:
        # MORPHOLOGICAL: binary mask, then opening removes specks smaller than the kernel
        gray = to_gray(img)
        _, mask = cv2.threshold(gray, BINARY_THRESHOLD, 255, cv2.THRESH_BINARY)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (KERNEL_SIZE, KERNEL_SIZE))
        dst = cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)
        params = {'method': 'threshold+morph_open', 'threshold': BINARY_THRESHOLD, 'kernel': KERNEL_SIZE}

    params['technique'] = technique
    return dst, params


def main():
    parser = argparse.ArgumentParser(description="Apply one image-processing technique to a file.")
    parser.add_argument("--input", required=True, help="Path to input image.")
    parser.add_argument("--technique", required=True,
                        help="Technique name or slug: " + ", ".join(sorted(ALIASES)))
    parser.add_argument("--output", default="processed-image.png", help="Output image path.")
    args = parser.parse_args()

    try:
        technique = resolve_technique(args.technique)
        with open(args.input, 'rb') as f:
            img = decode_image(f.read())
    except (UnknownTechniqueError, ImageDecodeError, OSError) as e:
        parser.error(str(e))

    dst, params = apply_technique(img, technique)
    try:
        ok = cv2.imwrite(args.output, dst)
    except cv2.error as e:
        # unsupported extension raises instead of returning False
        raise SystemExit(f"Failed to write {args.output}: {e}")
    if not ok:
        raise SystemExit(f"Failed to write {args.output}")
    print(f"Saved: {args.output} ({params['technique']})")


if __name__ == "__main__":
    main()
